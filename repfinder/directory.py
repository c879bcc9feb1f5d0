import hmac
import logging
from typing import Any

import requests

from repfinder.config import settings

logger = logging.getLogger(__name__)


class DirectoryUnavailable(Exception):
    """The employee directory could not be reached or returned garbage."""


class EmployeeDirectory:
    """Authenticates admins against the company employee directory."""

    def __init__(self, url: str, token: str = "", timeout: float = 10.0):
        self.url = url
        self.token = token
        self.timeout = timeout

    def fetch_employees(self) -> list[dict[str, Any]]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = requests.get(self.url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            logger.error("Employee directory request failed: %s", exc)
            raise DirectoryUnavailable("Failed to connect to employee directory") from exc
        except ValueError as exc:
            logger.error("Employee directory returned invalid JSON")
            raise DirectoryUnavailable("Invalid response from employee directory") from exc

        employees = payload.get("employees") if isinstance(payload, dict) else None
        if not isinstance(employees, list):
            logger.error("Employee directory payload has no employee list")
            raise DirectoryUnavailable("Invalid response from employee directory")
        return employees

    def authenticate(self, username: str, password: str) -> dict[str, str] | None:
        wanted = username.strip().lower()
        for employee in self.fetch_employees():
            if not isinstance(employee, dict):
                continue
            candidate = str(employee.get("username") or "")
            if candidate.lower() != wanted:
                continue
            expected = str(employee.get("password") or "")
            if not expected or not hmac.compare_digest(expected.encode(), password.encode()):
                return None
            return {
                "user_id": str(employee.get("id") or candidate),
                "username": candidate,
                "full_name": str(employee.get("name") or candidate),
            }
        return None


def get_directory() -> EmployeeDirectory:
    return EmployeeDirectory(settings.directory_url, settings.directory_token, settings.directory_timeout)
