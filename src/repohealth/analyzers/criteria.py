"""Evaluation of user-defined custom criteria."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from pydantic import TypeAdapter, ValidationError

from repohealth.errors import ConfigurationError, DataUnavailable
from repohealth.models.facts import RepositoryFacts
from repohealth.models.schemas import (
    Confidence,
    CriterionResult,
    CriterionType,
    CustomCriterion,
    Grade,
)

logger = logging.getLogger(__name__)

# Technologies recognized in free-form technology rules
KNOWN_TECHNOLOGIES = (
    "python", "javascript", "typescript", "go", "rust", "java", "kotlin", "ruby",
    "php", "swift", "scala", "elixir", "haskell", "react", "vue", "angular",
    "svelte", "node", "deno", "bun", "django", "flask", "fastapi", "rails",
)

# Root entries (lowercased) that signal a capability or theme
DOCKER_ENTRIES = frozenset(
    {"dockerfile", "docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml"}
)
CI_ENTRIES = frozenset(
    {".gitlab-ci.yml", ".travis.yml", ".circleci", "jenkinsfile", "azure-pipelines.yml", "bitbucket-pipelines.yml"}
)
TEST_ENTRIES = frozenset({
    "tests", "test", "spec", "__tests__", "pytest.ini", "tox.ini", "noxfile.py",
    "jest.config.js", "jest.config.ts", "vitest.config.js", "vitest.config.ts",
    "karma.conf.js", "playwright.config.ts", "cypress.config.js",
})
LINT_PREFIXES = (
    ".eslintrc", "eslint.config", ".prettierrc", ".stylelintrc", ".rubocop",
    ".golangci", ".pre-commit-config", "ruff.toml", ".flake8", ".pylintrc",
    "biome.json", "rustfmt.toml", "clippy.toml",
)

_CI_PATTERN = re.compile(r"\bci\b|ci/cd|cicd|continuous integration")
_COPYLEFT_PATTERN = re.compile(r"copyleft|gpl")
_IGNORED_TARGETS = {"exists", "exist", "true"}

_CRITERIA_ADAPTER = TypeAdapter(list[CustomCriterion])

Outcome = tuple[bool, Confidence, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _target(logic: str, keyword: str) -> str | None:
    """Extract the value a rule compares against.

    Understands ``language == Python``, ``topics includes cli``,
    ``file exists Dockerfile`` and a bare ``language python``.
    """
    patterns = [
        rf"\b{keyword}\s*(?:={{1,3}}|:)\s*([\w./+#-]+)",
        rf"\b{keyword}\s+(?:includes?|contains?|is)\s+([\w./+#-]+)",
        rf"\b{keyword}\s+(?:(?:exists?|named|called)\s+)?([\w./+#-]+)",
    ]
    for pattern in patterns:
        match = re.search(pattern, logic, re.IGNORECASE)
        if match and match.group(1).lower() not in _IGNORED_TARGETS:
            return match.group(1)
    return None


def load_criteria(path: Path) -> tuple[CustomCriterion, ...]:
    """Load custom criteria from a JSON file holding a list of criteria.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid.
    """
    try:
        criteria = tuple(_CRITERIA_ADAPTER.validate_json(path.read_bytes()))
    except OSError as e:
        raise ConfigurationError(f"Cannot read criteria file {path}: {e}", subject=str(path)) from e
    except ValidationError as e:
        raise ConfigurationError(f"Invalid criteria file {path}: {e}", subject=str(path)) from e
    validate_criteria(criteria)
    return criteria


def validate_criteria(criteria: Iterable[CustomCriterion]) -> None:
    """Reject criteria sets with duplicate ids."""
    seen: set[str] = set()
    for criterion in criteria:
        if criterion.id in seen:
            raise ConfigurationError(f"Duplicate custom criterion id: {criterion.id}", subject=criterion.id)
        seen.add(criterion.id)


class CriterionEvaluator:
    """Evaluates custom criteria against fetched repository facts.

    Every rule returns ``(passed, confidence, evidence)``. A failure is
    ``definite`` when the data settles it and ``likely`` when the evidence
    is incomplete (only the repository root is listed, for example). Rules
    that cannot be interpreted, or whose data could not be fetched, are
    flagged for manual review instead of failing.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utcnow
        self._rules: dict[CriterionType, Callable[[str, RepositoryFacts], Outcome]] = {
            CriterionType.TECHNOLOGY: self._technology,
            CriterionType.CAPABILITY: self._capability,
            CriterionType.THEME: self._theme,
            CriterionType.INCLUSION: self._inclusion,
            CriterionType.EXCLUSION: self._exclusion,
        }

    def evaluate_all(
        self, criteria: Iterable[CustomCriterion], facts: RepositoryFacts
    ) -> list[CriterionResult]:
        return [self.evaluate(criterion, facts) for criterion in criteria]

    def evaluate(self, criterion: CustomCriterion, facts: RepositoryFacts) -> CriterionResult:
        if not criterion.automatic:
            return self._manual_review(criterion, "This criterion requires manual evaluation")

        try:
            passed, confidence, evidence = self._rules[criterion.type](criterion.logic or "", facts)
        except DataUnavailable as e:
            return self._manual_review(criterion, e.reason)

        logger.debug(f"Criterion {criterion.id}: {'pass' if passed else 'fail'} ({evidence})")
        return self._result(
            criterion,
            grade=Grade.PASS if passed else Grade.FAIL,
            confidence=confidence,
            evidence=evidence,
        )

    def _manual_review(self, criterion: CustomCriterion, reason: str) -> CriterionResult:
        logger.info(f"Criterion {criterion.id} needs manual review: {reason}")
        return self._result(
            criterion,
            grade=Grade.MANUAL_REVIEW,
            confidence=Confidence.MANUAL_REVIEW,
            evidence=reason,
        )

    def _result(self, criterion: CustomCriterion, **fields) -> CriterionResult:
        return CriterionResult(
            id=criterion.id,
            name=criterion.name,
            type=criterion.type,
            evaluated_at=self._clock(),
            **fields,
        )

    # --- Data access ---

    def _require(self, facts: RepositoryFacts, resource: str):
        value = getattr(facts, resource)
        if value is None:
            reason = facts.unavailable.get(resource, "not fetched")
            raise DataUnavailable(f"Data unavailable ({resource}: {reason})")
        return value

    def _root_entries(self, facts: RepositoryFacts) -> set[str]:
        return {entry.name.lower() for entry in self._require(facts, "contents")}

    def _file_rule(self, logic: str, facts: RepositoryFacts) -> tuple[bool, str] | None:
        target = _target(logic, "file")
        if target is None:
            return None
        if target.lower() in self._root_entries(facts):
            return True, f"Found file: {target}"
        return False, f"File {target} not found in the repository root"

    # --- Rules ---

    def _technology(self, logic: str, facts: RepositoryFacts) -> Outcome:
        repo = self._require(facts, "repo")
        language = repo.language or ""
        topics = {topic.lower() for topic in repo.topics}

        wanted = _target(logic, "language")
        if wanted:
            if language.lower() == wanted.lower():
                return True, Confidence.DEFINITE, f"Primary language is {language}"
            confidence = Confidence.DEFINITE if language else Confidence.LIKELY
            return False, confidence, f"Primary language is {language or 'unknown'}, expected {wanted}"

        topic = _target(logic, "topics?")
        if topic:
            if topic.lower() in topics:
                return True, Confidence.DEFINITE, f"Found topic: {topic}"
            return False, Confidence.LIKELY, f"Topic {topic} not found in repository topics"

        lowered = logic.lower()
        mentioned = [tech for tech in KNOWN_TECHNOLOGIES if re.search(rf"\b{tech}\b", lowered)]
        if mentioned:
            signals = topics | {language.lower()}
            found = [tech for tech in mentioned if tech in signals]
            if found:
                return True, Confidence.DEFINITE, f"Detected {', '.join(found)} in language or topics"
            return False, Confidence.LIKELY, f"{', '.join(mentioned)} not found in language or topics"

        raise DataUnavailable("Unable to evaluate this technology criterion automatically")

    def _capability(self, logic: str, facts: RepositoryFacts) -> Outcome:
        lowered = logic.lower()

        if "docker" in lowered:
            found = sorted(self._root_entries(facts) & DOCKER_ENTRIES)
            if found:
                return True, Confidence.DEFINITE, f"Found: {', '.join(found)}"
            return False, Confidence.DEFINITE, "No Dockerfile or compose file in the repository root"

        if _CI_PATTERN.search(lowered):
            entries = self._root_entries(facts)
            found = sorted(entries & CI_ENTRIES)
            if found:
                return True, Confidence.DEFINITE, f"Found CI configuration: {', '.join(found)}"
            if ".github" in entries:
                return True, Confidence.LIKELY, "Found .github directory (workflows not listed)"
            return False, Confidence.LIKELY, "No CI configuration found in the repository root"

        file_check = self._file_rule(logic, facts)
        if file_check is not None:
            found, evidence = file_check
            return found, Confidence.DEFINITE, evidence

        raise DataUnavailable("Unable to evaluate this capability criterion automatically")

    def _theme(self, logic: str, facts: RepositoryFacts) -> Outcome:
        lowered = logic.lower()

        if re.search(r"\btest", lowered):
            found = sorted(self._root_entries(facts) & TEST_ENTRIES)
            if found:
                return True, Confidence.DEFINITE, f"Found test setup: {', '.join(found)}"
            return False, Confidence.LIKELY, "No test directory or test runner configuration in the repository root"

        if "lint" in lowered or "format" in lowered:
            found = sorted(
                name for name in self._root_entries(facts) if name.startswith(LINT_PREFIXES)
            )
            if found:
                return True, Confidence.DEFINITE, f"Found linting/formatting configuration: {', '.join(found)}"
            return False, Confidence.LIKELY, "No linting/formatting configuration in the repository root"

        raise DataUnavailable("Unable to evaluate this theme criterion automatically")

    def _inclusion(self, logic: str, facts: RepositoryFacts) -> Outcome:
        file_check = self._file_rule(logic, facts)
        if file_check is not None:
            found, evidence = file_check
            return found, Confidence.DEFINITE, evidence

        if "license" in logic.lower():
            repo = self._require(facts, "repo")
            if repo.license_spdx == "NOASSERTION":
                return True, Confidence.LIKELY, "License file found but not recognized"
            license_id = repo.license_spdx or repo.license_name
            if license_id:
                return True, Confidence.DEFINITE, f"License found: {license_id}"
            return False, Confidence.DEFINITE, "No license found"

        raise DataUnavailable("Unable to evaluate this inclusion criterion automatically")

    def _exclusion(self, logic: str, facts: RepositoryFacts) -> Outcome:
        file_check = self._file_rule(logic, facts)
        if file_check is not None:
            found, evidence = file_check
            return not found, Confidence.DEFINITE, evidence

        if _COPYLEFT_PATTERN.search(logic.lower()):
            repo = self._require(facts, "repo")
            license_id = repo.license_spdx or repo.license_name
            if license_id and "gpl" in license_id.lower():
                return False, Confidence.DEFINITE, f"Copyleft license detected: {license_id}"
            return True, Confidence.DEFINITE, f"License is not copyleft: {license_id or 'no license'}"

        raise DataUnavailable("Unable to evaluate this exclusion criterion automatically")
