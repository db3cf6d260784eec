from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the alert service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def ingest(
        self,
        reading_id: str,
        temperature: float,
        humidity: float,
        pressure: float,
        notify: bool = False,
        observed_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "reading_id": reading_id,
            "temperature": temperature,
            "humidity": humidity,
            "pressure": pressure,
            "notify": notify,
        }
        if observed_at:
            payload["observed_at"] = observed_at
        response = self._client.post("/alerts/ingest", json=payload)
        # A failed dispatch still carries the stored-alert outcome.
        if response.status_code == 502:
            return response.json()
        return self._json_or_exit(response)

    def history(self, limit: int) -> List[Dict[str, Any]]:
        response = self._client.get("/alerts/history", params={"limit": limit})
        payload = self._json_or_exit(response)
        alerts = payload.get("alerts")
        if not isinstance(alerts, list):
            raise typer.BadParameter("Unexpected response payload when listing history.")
        return alerts

    def set_config(self, sender: str, recipients: List[str]) -> Dict[str, Any]:
        response = self._client.put(
            "/alerts/config",
            json={"sender": sender, "recipients": recipients},
        )
        return self._json_or_exit(response)

    def get_config(self) -> Dict[str, Any]:
        return self._json_or_exit(self._client.get("/alerts/config"))

    def reset(self) -> Dict[str, Any]:
        return self._json_or_exit(self._client.post("/alerts/reset"))

    def _json_or_exit(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        if isinstance(detail, dict) and "error" in detail:
            detail = detail["error"]
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
