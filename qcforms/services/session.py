from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from ..db.finalize_store import build_payload
from ..models.document import SubmissionDocument, backfill_row_ids, is_empty, set_path
from ..models.submission import FinalizeResult, FormStatus, Submission
from ..models.template import FormTemplate
from .recalculation import PassResult, ReentrantMutationError, RecalculationDriver
from .rules.kinds import hydrate_initial_rows
from .rules.registry import default_registry

"""Form editing session.

One session owns one submission document for the duration of an edit. Every
mutation goes through ``set_field`` / ``set_fields`` and is followed by a
recalculation run; the snapshot the driver returns becomes the "previous" state
of the next mutation.

Lifecycle: open → (finalize | detach) → closed. A closed session rejects
further mutations.
"""

__all__ = [
    "FormSession",
    "SessionClosedError",
    "ValidationError",
    "REQUIRED_MESSAGE",
]

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "Este campo es obligatorio."

Persist = Callable[[dict[str, Any]], FinalizeResult]


class SessionClosedError(RuntimeError):
    """The session was finalized or detached."""


class ValidationError(Exception):
    """Required fields are missing; ``errors`` maps field key to message."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__(f"{len(self.errors)} required field(s) missing: {', '.join(sorted(self.errors))}")


def _utc_now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _is_blank(value: Any) -> bool:
    if isinstance(value, (list, dict)):
        return not value
    if isinstance(value, str):
        return value.strip() == ""
    return is_empty(value)


def _seed_data(template: FormTemplate, settings: Mapping[str, Any] | None) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for f in template.fields():
        if f.kind.is_table or f.initial_rows:
            set_path(data, f.key, hydrate_initial_rows(f))
    for path, value in template.defaults.items():
        set_path(data, path, copy.deepcopy(value))
    for name, value in (settings or {}).items():
        path = template.settings_paths.get(name)
        if path and value is not None:
            set_path(data, path, value)
    return data


class FormSession:
    def __init__(
        self,
        submission: Submission,
        template: FormTemplate,
        driver: RecalculationDriver | None = None,
    ) -> None:
        self.submission = submission
        self.template = template
        self.driver = driver or RecalculationDriver(default_registry())
        self.document = SubmissionDocument(submission.data)
        self.dirty = False
        self.closed = False
        self.last_result: PassResult | None = None
        self._previous: dict[str, Any] | None = None

    @classmethod
    def create(
        cls,
        template: FormTemplate,
        settings: Mapping[str, Any] | None = None,
        *,
        driver: RecalculationDriver | None = None,
        submission_id: str | None = None,
    ) -> FormSession:
        """Start a new draft: defaults, settings and initial rows, then one pass."""
        stamp = _utc_now()
        data = _seed_data(template, settings)
        submission = Submission(
            id=submission_id or str(uuid.uuid4()),
            template_id=template.id,
            data=data,
            created_at=stamp,
            updated_at=stamp,
            planta=(settings or {}).get("planta"),
        )
        session = cls(submission, template, driver)
        session._recalculate(copy.deepcopy(data))
        logger.debug(f"created draft {submission.id} for {template.id}")
        return session

    @classmethod
    def load(
        cls,
        submission: Submission,
        template: FormTemplate,
        *,
        driver: RecalculationDriver | None = None,
    ) -> FormSession:
        """Resume a saved draft.

        Rows without an id get one; the loaded data is its own previous
        snapshot, so the pass run here only rewrites derived values that are
        out of date.
        """
        if submission.template_id != template.id:
            raise ValueError(f"submission {submission.id} belongs to {submission.template_id}, not {template.id}")
        loaded = copy.deepcopy(submission)
        created = backfill_row_ids(loaded.data)
        session = cls(loaded, template, driver)
        session._recalculate(session.document.snapshot())
        if created:
            logger.info(f"{submission.id}: assigned ids to {created} row(s)")
        return session

    def _recalculate(self, previous: dict[str, Any]) -> PassResult:
        result = self.driver.run(self.document, self.template, previous, self.submission.dynamic_schemas)
        self._previous = result.snapshot
        self.last_result = result
        return result

    def _check_open(self) -> None:
        if self.closed:
            raise SessionClosedError(f"session for {self.submission.id} is closed")
        if self.driver.running:
            raise ReentrantMutationError("document mutation while recalculation is running")

    @property
    def data(self) -> dict[str, Any]:
        return self.document.data

    @property
    def dynamic_schemas(self) -> dict[str, Any]:
        return self.submission.dynamic_schemas

    def get(self, path: str, default: Any = None) -> Any:
        return self.document.get(path, default)

    def set_field(self, path: str, value: Any) -> PassResult:
        return self.set_fields({path: value})

    def set_fields(self, values: Mapping[str, Any]) -> PassResult:
        """Write several values as one user edit, then recalculate once.

        The writes are all-or-nothing: a path that cannot be written leaves the
        document exactly as it was. Rows added without an id get one before the
        rules see them.

        Raises:
            SessionClosedError: the session was finalized or detached
            ReentrantMutationError: called from inside a recalculation
            KeyError, IndexError: a path does not fit the document; nothing was written
        """
        self._check_open()
        previous = self._previous if self._previous is not None else self.document.snapshot()
        created = self.document.update(values)
        if created:
            logger.debug(f"{self.submission.id}: new row(s) got {created} id(s)")
        self.dirty = True
        return self._recalculate(previous)

    def apply_settings(self, planta: str | None = None, temporada: str | None = None) -> PassResult | None:
        values = {}
        for name, value in (("planta", planta), ("temporada", temporada)):
            path = self.template.settings_paths.get(name)
            if path and value is not None:
                values[path] = value
        if planta is not None:
            self.submission.planta = planta
        if not values:
            return None
        return self.set_fields(values)

    def is_visible(self, field_key: str) -> bool:
        return self.template.is_visible(field_key, self.document.data)

    def validate_section(self, section_key: str) -> dict[str, str]:
        section = self.template.section(section_key)
        if section is None:
            raise KeyError(f"{self.template.id}: unknown section {section_key}")
        errors: dict[str, str] = {}
        if section.dependency is not None and not section.dependency.matches(self.document.data):
            return errors
        for f in section.fields:
            if not f.required or f.read_only or not self.is_visible(f.key):
                continue
            if _is_blank(self.document.get(f.key)):
                errors[f.key] = REQUIRED_MESSAGE
        return errors

    def validate(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        for section in self.template.sections:
            errors.update(self.validate_section(section.key))
        return errors

    def to_submission(self) -> Submission:
        """Current state as a submission record (a copy, safe to serialize)."""
        out = copy.deepcopy(self.submission)
        out.data = self.document.snapshot()
        return out

    def finalize(self, persist: Persist, user: str) -> FinalizeResult:
        """Validate, stamp as Ingresado and hand the payload to ``persist``.

        The session is detached once ``persist`` returns. When it raises, the
        draft stays open and unchanged.

        Raises:
            SessionClosedError: the session was finalized or detached
            ValidationError: required visible fields are empty
        """
        self._check_open()
        errors = self.validate()
        if errors:
            raise ValidationError(errors)
        finalized = self.to_submission().with_status(FormStatus.FINALIZED, _utc_now())
        finalized.submitted_by = user
        result = persist(build_payload(finalized, self.template, user))
        self.submission = finalized
        self.dirty = False
        logger.info(f"{finalized.id}: finalized by {user} (health={result.health_status.value})")
        self.detach()
        return result

    def detach(self) -> None:
        self.closed = True
