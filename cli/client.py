from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the mapping service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def get_mapping(self, dataset_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/datasets/{dataset_id}/mapping")

    def update_mapping(self, dataset_id: str, mapping: Dict[str, Optional[str]]) -> Dict[str, Any]:
        return self._request("PATCH", f"/datasets/{dataset_id}/mapping", json=mapping)

    def reset_mapping(self, dataset_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/datasets/{dataset_id}/mapping")

    def detect_mapping(self, dataset_id: str, payload: Any, apply: bool = False) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/datasets/{dataset_id}/mapping/detect",
            json={"payload": payload, "applyToDataset": apply},
        )

    def preview_mapping(
        self,
        dataset_id: str,
        messages: List[Any],
        mapping: Optional[Dict[str, Optional[str]]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"messages": messages}
        if mapping is not None:
            body["mapping"] = mapping
        return self._request("POST", f"/datasets/{dataset_id}/mapping/preview", json=body)

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
