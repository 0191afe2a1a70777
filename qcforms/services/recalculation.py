from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..models.document import SubmissionDocument, get_path, set_path
from ..models.template import FieldKind, FormField, FormTemplate
from .change_detector import value_changed, was_user_edited

"""Recalculation driver.

Runs the ordered rule list of the active template after every document mutation.

Per pass:
- Snapshotting: the previous snapshot is the state before the mutation.
- RunningRules: each rule reads (previous, current) through a RuleContext and
  returns path -> value patches; it never touches the document itself.
- WritingResults: a patch is written only when it differs from the live value,
  and every written path is folded into the previous snapshot right away, so the
  next rule sees it as carried over rather than as a fresh user edit.

Passes repeat until one writes nothing, bounded by ``max_passes``. A rule that
fails is skipped and logged; typing must never be blocked by a derived field.
"""

__all__ = [
    "DriverState",
    "ReentrantMutationError",
    "RuleContext",
    "Rule",
    "SchemaRule",
    "RuleRegistry",
    "PassResult",
    "RecalculationDriver",
]

logger = logging.getLogger(__name__)

_MISSING = object()

Patches = dict[str, Any]
SchemaPatches = dict[str, "list[dict[str, Any]] | None"]


class ReentrantMutationError(RuntimeError):
    """A document mutation was attempted while a recalculation pass was running."""


class DriverState(Enum):
    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    RUNNING_RULES = "running_rules"
    WRITING_RESULTS = "writing_results"


@dataclass(frozen=True)
class RuleContext:
    """Read-only inputs of one rule invocation.

    ``current`` is the live document data; rules must treat it (and every row in
    it) as immutable and express changes as patches.
    """
    template: FormTemplate
    previous: dict[str, Any]
    current: dict[str, Any]
    dynamic_schemas: dict[str, Any] = field(default_factory=dict)

    @property
    def template_id(self) -> str:
        return self.template.id

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self.current, path, default)

    def get_previous(self, path: str, default: Any = None) -> Any:
        return get_path(self.previous, path, default)

    def rows(self, path: str) -> list[dict[str, Any]]:
        """Rows at ``path``; positions are kept, non-row entries read as empty rows."""
        value = get_path(self.current, path)
        if not isinstance(value, list):
            return []
        return [r if isinstance(r, dict) else {} for r in value]

    def previous_rows(self, path: str) -> list[dict[str, Any]]:
        value = get_path(self.previous, path)
        if not isinstance(value, list):
            return []
        return [r if isinstance(r, dict) else {} for r in value]

    def edited(self, table_key: str, row_index_or_id: int | str, column_key: str) -> bool:
        return was_user_edited(table_key, row_index_or_id, column_key, self.previous, self.current)

    def changed(self, path: str) -> bool:
        return value_changed(path, self.previous, self.current)


@dataclass(frozen=True)
class Rule:
    name: str
    compute: Callable[[RuleContext], Patches]
    governed_by: str | None = None  # field key whose visibility gates the rule


@dataclass(frozen=True)
class SchemaRule:
    """Computes per-table dynamic column sets; ``None`` removes a table's schema."""
    name: str
    compute: Callable[[RuleContext], SchemaPatches]


KindRuleFactory = Callable[[FormField], "Rule | None"]


class RuleRegistry:
    """Ordered rules per template id plus rules resolved per field kind."""

    def __init__(self) -> None:
        self._rules: dict[str, list[Rule]] = {}
        self._schema_rules: dict[str, list[SchemaRule]] = {}
        self._kind_factories: dict[FieldKind, list[KindRuleFactory]] = {}

    def register(self, template_id: str, rule: Rule) -> Rule:
        self._rules.setdefault(template_id, []).append(rule)
        return rule

    def register_many(self, template_id: str, rules: list[Rule]) -> None:
        for rule in rules:
            self.register(template_id, rule)

    def register_schema(self, template_id: str, rule: SchemaRule) -> SchemaRule:
        self._schema_rules.setdefault(template_id, []).append(rule)
        return rule

    def register_kind(self, kind: FieldKind, factory: KindRuleFactory) -> None:
        self._kind_factories.setdefault(kind, []).append(factory)

    def template_ids(self) -> list[str]:
        return sorted(set(self._rules) | set(self._schema_rules))

    def rules_for(self, template: FormTemplate) -> list[Rule]:
        """Kind rules (in field order) first, then the template's own rules."""
        out: list[Rule] = []
        for f in template.fields():
            for factory in self._kind_factories.get(f.kind, []):
                rule = factory(f)
                if rule is not None:
                    out.append(rule)
        out.extend(self._rules.get(template.id, []))
        return out

    def schema_rules_for(self, template: FormTemplate) -> list[SchemaRule]:
        return list(self._schema_rules.get(template.id, []))


@dataclass(frozen=True)
class PassResult:
    writes: tuple[str, ...]  # paths written, in order
    passes: int
    snapshot: dict[str, Any]  # new previous snapshot (full copy of the data)
    schema_changes: tuple[str, ...] = ()
    converged: bool = True

    @property
    def changed(self) -> bool:
        return bool(self.writes or self.schema_changes)


def _absorb(snapshot: dict[str, Any], data: dict[str, Any], path: str) -> None:
    """Copy the live value at ``path`` into the snapshot.

    Falls back to the nearest ancestor the snapshot can hold (a row that did not
    exist yet in the snapshot, for instance).
    """
    segments = path.split(".")
    for cut in range(len(segments), 0, -1):
        sub = ".".join(segments[:cut])
        try:
            set_path(snapshot, sub, copy.deepcopy(get_path(data, sub)))
            return
        except (KeyError, IndexError):
            continue


class RecalculationDriver:
    def __init__(self, registry: RuleRegistry, *, max_passes: int = 2) -> None:
        if max_passes < 1:
            raise ValueError("max_passes must be >= 1")
        self.registry = registry
        self.max_passes = max_passes
        self.state = DriverState.IDLE

    @property
    def running(self) -> bool:
        return self.state is not DriverState.IDLE

    def run(
        self,
        document: SubmissionDocument,
        template: FormTemplate,
        previous: dict[str, Any] | None,
        dynamic_schemas: dict[str, Any] | None = None,
    ) -> PassResult:
        """Run the template's rules to a fixpoint and return the new snapshot.

        Raises:
            ReentrantMutationError: called while a pass is already running
        """
        if self.running:
            raise ReentrantMutationError("recalculation already in progress")
        schemas = dynamic_schemas if dynamic_schemas is not None else {}
        rules = self.registry.rules_for(template)
        schema_rules = self.registry.schema_rules_for(template)
        writes: list[str] = []
        schema_changes: list[str] = []
        passes = 0
        converged = False
        try:
            self.state = DriverState.SNAPSHOTTING
            snapshot = copy.deepcopy(previous) if previous is not None else document.snapshot()
            for passes in range(1, self.max_passes + 1):
                pass_writes = self._run_rules(rules, document, template, snapshot, schemas)
                pass_schemas = self._run_schema_rules(schema_rules, document, template, snapshot, schemas)
                writes.extend(pass_writes)
                schema_changes.extend(pass_schemas)
                self.state = DriverState.SNAPSHOTTING
                snapshot = document.snapshot()
                if not pass_writes and not pass_schemas:
                    converged = True
                    break
            if not converged:
                logger.warning(
                    f"{template.id}: rules still writing after {self.max_passes} pass(es); stopping"
                )
        finally:
            self.state = DriverState.IDLE
        if writes:
            logger.debug(f"{template.id}: {len(writes)} write(s) in {passes} pass(es)")
        return PassResult(
            writes=tuple(writes),
            passes=passes,
            snapshot=snapshot,
            schema_changes=tuple(schema_changes),
            converged=converged,
        )

    def _run_rules(
        self,
        rules: list[Rule],
        document: SubmissionDocument,
        template: FormTemplate,
        snapshot: dict[str, Any],
        schemas: dict[str, Any],
    ) -> list[str]:
        written: list[str] = []
        for rule in rules:
            if rule.governed_by and not template.is_visible(rule.governed_by, document.data):
                continue
            self.state = DriverState.RUNNING_RULES
            ctx = RuleContext(template=template, previous=snapshot, current=document.data, dynamic_schemas=schemas)
            try:
                patches = rule.compute(ctx) or {}
            except Exception as e:
                logger.warning(f"{template.id}: rule {rule.name} skipped: {e}")
                continue
            self.state = DriverState.WRITING_RESULTS
            for path, value in patches.items():
                if document.get(path, _MISSING) == value:
                    continue
                try:
                    document.set(path, copy.deepcopy(value))
                except (KeyError, IndexError) as e:
                    logger.warning(f"{template.id}: rule {rule.name} could not write {path}: {e}")
                    continue
                written.append(path)
                _absorb(snapshot, document.data, path)
        return written

    def _run_schema_rules(
        self,
        rules: list[SchemaRule],
        document: SubmissionDocument,
        template: FormTemplate,
        snapshot: dict[str, Any],
        schemas: dict[str, Any],
    ) -> list[str]:
        changed: list[str] = []
        for rule in rules:
            self.state = DriverState.RUNNING_RULES
            ctx = RuleContext(template=template, previous=snapshot, current=document.data, dynamic_schemas=schemas)
            try:
                patches = rule.compute(ctx) or {}
            except Exception as e:
                logger.warning(f"{template.id}: schema rule {rule.name} skipped: {e}")
                continue
            self.state = DriverState.WRITING_RESULTS
            for table_key, columns in patches.items():
                if columns is None:
                    if table_key in schemas:
                        del schemas[table_key]
                        changed.append(table_key)
                elif schemas.get(table_key) != columns:
                    schemas[table_key] = copy.deepcopy(columns)
                    changed.append(table_key)
        return changed
