"""Configuration module with layered validation and connectivity checks.

Provides Settings dataclass, environment variable validation, and Azure
Resource Manager / Microsoft Graph connectivity testing for the Sentinel
hunting integration.
"""

import os
import sys
from dataclasses import dataclass

from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from sentinel_th.errors import RemoteError

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
MANAGEMENT_SCOPE = "https://management.azure.com/.default"


@dataclass
class Settings:
    """All configuration loaded from environment variables."""

    # Sentinel workspace (ARM coordinates + Log Analytics GUID)
    azure_subscription_id: str = ""
    azure_resource_group: str = ""
    sentinel_workspace_name: str = ""
    sentinel_workspace_id: str = ""

    # Auth (optional -- DefaultAzureCredential handles this via az login).
    # AZURE_CLIENT_ID doubles as the application looked up by /app-info.
    azure_tenant_id: str = ""
    azure_client_id: str = ""
    azure_client_secret: str = ""

    # HTTP service
    host: str = "0.0.0.0"
    port: int = 3001
    uploads_dir: str = "uploads"
    log_level: str = "INFO"

    # Internal tuning knobs (not loaded from env vars)
    request_timeout: int = 30
    saved_search_api_version: str = "2020-08-01"
    hunts_api_version: str = "2023-11-01-preview"

    @property
    def workspace_resource_id(self) -> str:
        """Full ARM resource id of the Log Analytics workspace."""
        return (
            f"/subscriptions/{self.azure_subscription_id}"
            f"/resourceGroups/{self.azure_resource_group}"
            "/providers/Microsoft.OperationalInsights"
            f"/workspaces/{self.sentinel_workspace_name}"
        )


REQUIRED_VARS: dict[str, str] = {
    "AZURE_SUBSCRIPTION_ID": "Subscription holding the Sentinel workspace",
    "AZURE_RESOURCE_GROUP": "Resource group of the Sentinel workspace",
    "SENTINEL_WORKSPACE_NAME": "Log Analytics workspace name",
    "SENTINEL_WORKSPACE_ID": "Log Analytics workspace GUID",
}

OPTIONAL_VARS: dict[str, str] = {
    "AZURE_CLIENT_ID": "Application looked up by /api/app-info",
    "UPLOADS_DIR": "Staging directory for uploaded .kql files",
    "PORT": "HTTP listen port",
}


def load_settings() -> Settings:
    """Load and return settings from .env file."""
    load_dotenv()
    return Settings(
        azure_subscription_id=os.getenv("AZURE_SUBSCRIPTION_ID", ""),
        azure_resource_group=os.getenv("AZURE_RESOURCE_GROUP", ""),
        sentinel_workspace_name=os.getenv("SENTINEL_WORKSPACE_NAME", ""),
        sentinel_workspace_id=os.getenv("SENTINEL_WORKSPACE_ID", ""),
        azure_tenant_id=os.getenv("AZURE_TENANT_ID", ""),
        azure_client_id=os.getenv("AZURE_CLIENT_ID", ""),
        azure_client_secret=os.getenv("AZURE_CLIENT_SECRET", ""),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3001")),
        uploads_dir=os.getenv("UPLOADS_DIR", "uploads"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def validate_env_vars() -> tuple[list[str], list[str]]:
    """Check all required env vars are present. Returns (passed, failed) lists.

    Shows ALL missing vars at once (not fail-fast) so the operator can fix
    them in one pass.
    """
    load_dotenv()
    passed: list[str] = []
    failed: list[str] = []
    for var, description in REQUIRED_VARS.items():
        value = os.getenv(var, "")
        if value:
            passed.append(var)
        else:
            failed.append(f"{var} ({description})")
    return passed, failed


def test_management_connectivity(settings: Settings) -> tuple[bool, str]:
    """Test Azure Resource Manager access to the workspace. Returns (success, message).

    Lists saved searches, which needs the same Log Analytics read permission
    that every hunting operation relies on.
    """
    # Imported here to avoid a config <-> client import cycle
    from sentinel_th.sentinel_client import SentinelClient

    try:
        client = SentinelClient(settings)
        searches = client.list_saved_searches()
        return True, f"Workspace reachable ({len(searches)} saved searches)"
    except RemoteError as e:
        if e.status_code in (401, 403):
            return False, "Workspace auth failed -- run 'az login' or check role assignments"
        if e.status_code == 404:
            return False, "Workspace not found -- check SENTINEL_WORKSPACE_NAME and resource group"
        return False, f"Workspace error: {e.message[:200]}"


# Tell pytest this is not a test function
test_management_connectivity.__test__ = False  # type: ignore[attr-defined]


def test_graph_connectivity(settings: Settings) -> tuple[bool, str]:
    """Test that a Microsoft Graph token can be acquired. Returns (success, message)."""
    try:
        credential = DefaultAzureCredential()
        credential.get_token(GRAPH_SCOPE)
        return True, "Microsoft Graph token acquired"
    except ClientAuthenticationError as e:
        return False, f"Graph auth failed: {str(e)[:200]}"


# Tell pytest this is not a test function
test_graph_connectivity.__test__ = False  # type: ignore[attr-defined]


def validate_and_display() -> None:
    """Orchestrate two-layer validation and display results as a rich table.

    Layer 1: Check all required env vars are present.
    Layer 2: Test live connectivity to Azure services (only if Layer 1 passes).
    """
    console = Console()
    table = Table(title="Configuration Validation")
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Details")

    # Layer 1: Environment variable validation
    passed, failed = validate_env_vars()

    for var in passed:
        table.add_row(f"Env: {var}", "[green]PASS[/green]", "Set")

    for var_desc in failed:
        table.add_row(f"Env: {var_desc.split(' (')[0]}", "[red]FAIL[/red]", f"Missing: {var_desc}")

    if failed:
        console.print(table)
        console.print(
            f"\n[red]Validation failed:[/red] {len(failed)} required env var(s) missing. "
            "Connectivity checks skipped."
        )
        sys.exit(1)

    # Layer 2: Connectivity checks (only if all env vars pass)
    settings = load_settings()

    arm_ok, arm_msg = test_management_connectivity(settings)
    table.add_row(
        "Sentinel workspace",
        "[green]PASS[/green]" if arm_ok else "[red]FAIL[/red]",
        arm_msg,
    )

    graph_ok, graph_msg = test_graph_connectivity(settings)
    table.add_row(
        "Microsoft Graph",
        "[green]PASS[/green]" if graph_ok else "[red]FAIL[/red]",
        graph_msg,
    )

    console.print(table)

    if not arm_ok or not graph_ok:
        console.print("\n[red]Validation failed:[/red] One or more connectivity checks failed.")
        sys.exit(1)

    console.print("\n[green]All checks passed.[/green]")
    sys.exit(0)


if __name__ == "__main__":
    validate_and_display()
