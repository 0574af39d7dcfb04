"""CLI-specific exceptions with Rich display support."""

from typing import List, Optional


class DataFerryCLIError(Exception):
    """Base exception for CLI operations with Rich display support."""

    def __init__(self, message: str, suggestions: Optional[List[str]] = None):
        self.message = message
        self.suggestions = suggestions or []
        super().__init__(message)


class ProfileNotFoundError(DataFerryCLIError):
    """Raised when a profile cannot be found."""

    def __init__(
        self,
        profile_name: str,
        available_profiles: Optional[List[str]] = None,
        search_path: Optional[str] = None,
    ):
        self.profile_name = profile_name
        self.available_profiles = available_profiles or []
        self.search_path = search_path

        suggestions = []
        if search_path:
            suggestions.append(f"Searched in: {search_path}")
        if self.available_profiles:
            suggestions.append(f"Try: {', '.join(self.available_profiles[:3])}")
        super().__init__(f"Profile '{profile_name}' not found", suggestions)


class EndpointNotFoundError(DataFerryCLIError):
    """Raised when a command names an endpoint the profile does not define."""

    def __init__(self, endpoint_name: str, available_endpoints: List[str]):
        self.endpoint_name = endpoint_name
        self.available_endpoints = available_endpoints
        suggestions = (
            [f"Try: {', '.join(available_endpoints[:3])}"] if available_endpoints else []
        )
        super().__init__(f"Endpoint '{endpoint_name}' not found in profile", suggestions)


class DirectionError(DataFerryCLIError):
    """Raised when source and target are not one store and one file."""

    def __init__(self, source: str, target: str):
        super().__init__(
            f"Cannot transfer from '{source}' to '{target}'",
            ["One endpoint must be a store (duckdb, memory) and the other a file (csv)"],
        )


class MappingOptionError(DataFerryCLIError):
    """Raised when a --map option is not of the form SOURCE=TARGET."""

    def __init__(self, option: str):
        self.option = option
        super().__init__(
            f"Invalid mapping '{option}'",
            ["Use --map SOURCE=TARGET, or --exclude SOURCE to skip a column"],
        )


class NoJobError(DataFerryCLIError):
    """Raised when status or cancel finds no recorded job."""

    def __init__(self, state_dir: str):
        self.state_dir = state_dir
        super().__init__(
            f"No transfer recorded in {state_dir}",
            ["Run 'dataferry start' to begin a transfer"],
        )
