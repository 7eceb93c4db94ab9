"""
Template mapping rules.

Resolves which template serves a requested submodel or shell. Patterns
are regular expressions matched case-insensitively; the first matching
rule wins.
"""

import logging
import re

from twin_engine.config import AasIdExtractionRule, TemplateMappingRule, get_settings
from twin_engine.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class TemplateMapping:
    """Maps submodel and shell identifiers to template identifiers."""

    def __init__(
        self,
        submodel_rules: list[TemplateMappingRule] | None = None,
        shell_rules: list[TemplateMappingRule] | None = None,
        extraction_rules: list[AasIdExtractionRule] | None = None,
    ):
        settings = get_settings()
        self.submodel_rules = self._compile(
            submodel_rules if submodel_rules is not None else settings.submodel_template_mappings
        )
        self.shell_rules = self._compile(
            shell_rules if shell_rules is not None else settings.shell_template_mappings
        )
        self.extraction_rules = (
            extraction_rules if extraction_rules is not None else settings.aas_id_extraction_rules
        )

    @staticmethod
    def _compile(rules: list[TemplateMappingRule]) -> list[tuple[str, list[re.Pattern]]]:
        return [
            (rule.templateId, [re.compile(pattern, re.IGNORECASE) for pattern in rule.patterns])
            for rule in rules
        ]

    @staticmethod
    def _match(rules: list[tuple[str, list[re.Pattern]]], value: str) -> str | None:
        for template_id, patterns in rules:
            if any(pattern.search(value) for pattern in patterns):
                return template_id
        return None

    def submodel_template_id(self, submodel_id: str) -> str:
        """
        Get the template id for a submodel.

        Raises:
            NotFoundError: If no rule matches
        """
        template_id = self._match(self.submodel_rules, submodel_id)
        if template_id is None:
            logger.error(f"No matching template found for submodel: {submodel_id}")
            raise NotFoundError(f"No template for submodel '{submodel_id}'")
        return template_id

    def product_id(self, aas_id: str) -> str:
        """
        Extract the product id from a shell identifier.

        The first rule whose separator splits the identifier into at least
        ``index`` parts yields part ``index`` (1-based).

        Raises:
            NotFoundError: If no rule yields a non-empty product id
        """
        for rule in self.extraction_rules:
            parts = aas_id.split(rule.separator)
            if len(parts) >= rule.index and parts[rule.index - 1]:
                return parts[rule.index - 1]
        logger.error(f"Product id could not be extracted from shell id: {aas_id}")
        raise NotFoundError(f"No product id in shell id '{aas_id}'")

    def shell_template_id(self, aas_id: str) -> str:
        """
        Get the template id for a shell.

        Raises:
            NotFoundError: If no product id can be extracted or no rule
                matches it
        """
        product_id = self.product_id(aas_id)
        template_id = self._match(self.shell_rules, product_id)
        if template_id is None:
            logger.error(f"No matching template found for shell: {aas_id}")
            raise NotFoundError(f"No template for shell '{aas_id}'")
        return template_id
