import os
import httpx
from typing import Dict, Any, List, Optional
from elicit.core.errors import ServiceUnavailable
from elicit.utils.logger import get_logger

logger = get_logger("utils.supabase_client")

FILTER_OPERATORS = ("eq", "neq", "gt", "lt", "gte", "lte", "like", "ilike", "in", "is")


class SupabaseClient:
    """
    Lightweight client for the Supabase REST (PostgREST) API.

    Reads fail soft and return empty results. Writes raise ServiceUnavailable
    so that a lost session update is never silent.
    """
    def __init__(self, url: Optional[str] = None, key: Optional[str] = None, client: Optional[httpx.Client] = None):
        self.url = url or os.environ.get("SUPABASE_URL")
        self.key = key or os.environ.get("SUPABASE_KEY")

        if not self.url or not self.key:
            logger.warning("SUPABASE_URL or SUPABASE_KEY not set in environment.")

        self.headers = {
            "apikey": self.key or "",
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation"
        }
        self.client = client or httpx.Client(base_url=self.url or "", headers=self.headers, timeout=30.0)

    def is_configured(self) -> bool:
        return bool(self.url and self.key)

    @staticmethod
    def _filter_params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        params = {}
        for key, val in (filters or {}).items():
            if isinstance(val, str) and "." in val and val.split(".")[0] in FILTER_OPERATORS:
                params[key] = val
            else:
                params[key] = f"eq.{val}"
        return params

    def select(self, table: str, filters: Optional[Dict[str, Any]] = None, select: str = "*", limit: Optional[int] = None, order: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Query a Supabase table.
        """
        params = {"select": select, **self._filter_params(filters)}
        if limit:
            params["limit"] = str(limit)
        if order:
            params["order"] = order

        try:
            response = self.client.get(f"/rest/v1/{table}", params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Supabase select failed on {table}: {e}")
            return []

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.client.post(f"/rest/v1/{table}", json=row)
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Supabase insert failed on {table}: {e}")
            raise ServiceUnavailable(f"Failed to insert into {table}: {e}") from e
        return rows[0] if rows else row

    def update(self, table: str, filters: Dict[str, Any], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            response = self.client.patch(f"/rest/v1/{table}", params=self._filter_params(filters), json=values)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Supabase update failed on {table}: {e}")
            raise ServiceUnavailable(f"Failed to update {table}: {e}") from e

    def delete(self, table: str, filters: Dict[str, Any]) -> bool:
        try:
            response = self.client.delete(f"/rest/v1/{table}", params=self._filter_params(filters))
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Supabase delete failed on {table}: {e}")
            return False
