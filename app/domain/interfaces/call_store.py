"""
Call Store Interface
Key-addressed access to call records and the entities AskBob tasks reference
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class CallStore(ABC):
    """
    Lookup/update capability over the durable call record.

    Rows are returned as plain dicts; every row carries its `workspace_id`
    so callers can re-check tenant ownership before acting on it.
    """

    @abstractmethod
    def get_call(self, call_id: str) -> Optional[Dict[str, Any]]:
        """Read a call by internal id"""
        pass

    @abstractmethod
    def find_call_by_provider_sid(self, call_sid: str) -> Optional[Dict[str, Any]]:
        """Read a call by the provider's call SID"""
        pass

    @abstractmethod
    def insert_call(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a call row.

        Returns:
            The inserted row, including its generated id
        """
        pass

    @abstractmethod
    def update_call(
        self,
        call_id: str,
        workspace_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Apply a single update scoped to (id, workspace).

        Returns:
            The updated row, or None when nothing matched
        """
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_quote(self, quote_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def find_customer_by_phone(self, workspace_id: str, phone: str) -> Optional[Dict[str, Any]]:
        """Customer in the workspace whose stored phone equals `phone`"""
        pass

    @abstractmethod
    def find_workspace_by_phone_number(self, phone: str) -> Optional[Dict[str, Any]]:
        """
        Workspace that owns a provider phone number.

        Returns:
            {"workspace_id", "owner_id"} or None when the number is unassigned
        """
        pass
