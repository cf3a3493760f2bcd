"""
Custom field alias resolution.

Create and update calls may address custom fields by the readable alias
``<custom group name>.<custom field name>``; the host only understands
``custom_<field id>``. ``CustomDataResolver`` rewrites the aliases in place.
"""

import logging
from typing import Any, Dict, Optional

from .connectors.civicrm import CiviCRMConnector

logger = logging.getLogger(__name__)


class CustomDataResolver:
    """Resolves ``group.field`` aliases against the host's custom field schema."""

    def __init__(self, connector: CiviCRMConnector) -> None:
        self._connector = connector

    def get_field_key(self, group_name: str, field_name: str) -> Optional[str]:
        """
        Get the API key of a custom field.

        Returns:
            ``custom_<id>``, or None if the group has no such field
        """
        fields = self._connector.get(
            "CustomField",
            check_permissions=0,
            name=field_name,
            **{"custom_group_id.name": group_name},
        )
        if not fields:
            return None
        return f"custom_{fields[0]['id']}"

    def resolve_custom_fields(self, data: Dict[str, Any]) -> None:
        """
        Replace custom field aliases in ``data`` with their API keys.

        Unknown aliases are left as they are and logged.

        Examples:
            >>> data = {"id": 5, "membership_info.membership_annual": 60.0}
            >>> resolver.resolve_custom_fields(data)
            >>> data
            {'id': 5, 'custom_23': 60.0}
        """
        for key in [k for k in data if "." in k]:
            group_name, field_name = key.split(".", 1)
            field_key = self.get_field_key(group_name, field_name)
            if field_key is None:
                logger.warning(f"Custom field '{key}' could not be resolved")
                continue
            data[field_key] = data.pop(key)
