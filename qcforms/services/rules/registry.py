from __future__ import annotations

import logging

from ..recalculation import RuleRegistry
from . import (
    empaque,
    precosecha,
    presizer,
    proyeccion_embalaje,
    recepcion_madurez,
)
from .common import variety_schema_rule
from .kinds import register_kind_rules

"""Rule registry wiring for every supported template."""

__all__ = ["default_registry", "TEMPLATE_RULE_SETS"]

logger = logging.getLogger(__name__)

TEMPLATE_RULE_SETS = {
    precosecha.TEMPLATE_ID: precosecha.RULES,
    recepcion_madurez.TEMPLATE_ID: recepcion_madurez.RULES,
    proyeccion_embalaje.TEMPLATE_ID: proyeccion_embalaje.RULES,
    empaque.TEMPLATE_ID: empaque.RULES,
    presizer.TEMPLATE_ID: presizer.RULES,
}

# templates whose category table takes its columns from the variety group
VARIETY_SCHEMA_TEMPLATES = (precosecha.TEMPLATE_ID, proyeccion_embalaje.TEMPLATE_ID)


def default_registry() -> RuleRegistry:
    registry = RuleRegistry()
    register_kind_rules(registry)
    for template_id, rules in TEMPLATE_RULE_SETS.items():
        registry.register_many(template_id, rules)
    for template_id in VARIETY_SCHEMA_TEMPLATES:
        registry.register_schema(template_id, variety_schema_rule())
    logger.debug(f"rule registry ready for {len(registry.template_ids())} template(s)")
    return registry
