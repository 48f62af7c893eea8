"""
Remote task store used by the sync client.

HttpTodoStore talks to the service's /api/todos endpoints with an
httpx.AsyncClient. Every transport failure or non-2xx response surfaces as
StoreError.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from schemas import Todo, TodoUpdate

logger = logging.getLogger(__name__)


class StoreError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TodoStore(Protocol):
    async def list_todos(self) -> List[Todo]: ...

    async def insert(self, todo: Todo) -> Todo: ...

    async def update(self, todo_id: str, fields: Dict[str, Any]) -> Todo: ...

    async def delete(self, todo_id: str) -> None: ...


class HttpTodoStore:
    """TodoStore over the service's REST endpoints."""

    def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None):
        self.client = client
        self.token = token

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        logger.debug(f"{method} {path}")
        try:
            response = await self.client.request(method, path, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise StoreError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            try:
                payload = response.json()
                message = response.text
                if isinstance(payload, dict):
                    message = payload.get("error") or payload.get("detail") or message
            except ValueError:
                message = response.text
            raise StoreError(str(message), status_code=response.status_code)
        return response

    async def list_todos(self) -> List[Todo]:
        response = await self._request("GET", "/api/todos")
        return [Todo.model_validate(item) for item in response.json()]

    async def insert(self, todo: Todo) -> Todo:
        payload = todo.model_dump(mode="json", exclude={"created_by", "updated_at", "updated_by"})
        response = await self._request("POST", "/api/todos", json=payload)
        return Todo.model_validate(response.json())

    async def update(self, todo_id: str, fields: Dict[str, Any]) -> Todo:
        payload = TodoUpdate(**fields).model_dump(mode="json", exclude_unset=True)
        response = await self._request("PATCH", f"/api/todos/{todo_id}", json=payload)
        return Todo.model_validate(response.json())

    async def delete(self, todo_id: str) -> None:
        await self._request("DELETE", f"/api/todos/{todo_id}")
