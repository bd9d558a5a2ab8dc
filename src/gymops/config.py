from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from gymops.domain.stages import Role

WORKSPACES_DIR = Path("workspaces")
CURRENT_WORKSPACE_FILE = WORKSPACES_DIR / ".current"
WORKSPACE_FILENAME = "workspace.yaml"
EVENTS_FILENAME = "events.jsonl"

RESOURCES_DIR = Path(__file__).resolve().parent / "resources"
SCHEMA_PATH = RESOURCES_DIR / "schema.yaml"
POLICY_PATH = RESOURCES_DIR / "access.yaml"

BACKEND_PROVIDERS = ("local", "supabase")
SUPABASE_KEY_ENV = "SUPABASE_SERVICE_KEY"


@dataclass(frozen=True)
class StoreConfig:
    sqlite_path: Path


@dataclass(frozen=True)
class BackendConfig:
    provider: str
    url: str | None


@dataclass(frozen=True)
class ActorConfig:
    id: str | None
    role: str
    branch_id: str | None


@dataclass(frozen=True)
class WorkspaceConfig:
    name: str
    store: StoreConfig
    backend: BackendConfig
    actor: ActorConfig
    policy_path: Path
    path: Path

    @property
    def events_path(self) -> Path:
        return self.path / EVENTS_FILENAME


class WorkspaceError(RuntimeError):
    pass


def ensure_workspaces_dir() -> None:
    WORKSPACES_DIR.mkdir(parents=True, exist_ok=True)


def set_current_workspace(name: str) -> None:
    ensure_workspaces_dir()
    CURRENT_WORKSPACE_FILE.write_text(f"{name}\n", encoding="utf-8")


def get_current_workspace_name() -> str:
    if not CURRENT_WORKSPACE_FILE.exists():
        raise WorkspaceError("No active workspace. Run `gymops workspace use <name>`.")
    return CURRENT_WORKSPACE_FILE.read_text(encoding="utf-8").strip()


def workspace_path(name: str) -> Path:
    return WORKSPACES_DIR / name


def workspace_config_path(name: str) -> Path:
    return workspace_path(name) / WORKSPACE_FILENAME


def load_workspace(name: str | None = None) -> WorkspaceConfig:
    if name is None:
        name = get_current_workspace_name()
    config_path = workspace_config_path(name)
    if not config_path.exists():
        raise WorkspaceError(f"Workspace config not found: {config_path}")
    return parse_workspace(name, config_path)


def parse_workspace(name: str, config_path: Path) -> WorkspaceConfig:
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise WorkspaceError("Workspace config must be a mapping.")
    return WorkspaceConfig(
        name=name,
        store=_parse_store(data.get("store"), config_path),
        backend=_parse_backend(data.get("backend")),
        actor=_parse_actor(data.get("actor")),
        policy_path=_parse_policy_path(data.get("policy_path"), config_path),
        path=config_path.parent,
    )


def write_workspace_config(
    name: str,
    provider: str = "local",
    url: str | None = None,
    role: str = Role.STAFF.value,
    branch_id: str | None = None,
    actor_id: str | None = None,
) -> Path:
    ensure_workspaces_dir()
    ws_dir = workspace_path(name)
    ws_dir.mkdir(parents=True, exist_ok=True)
    config = {
        "workspace": name,
        "store": {"sqlite_path": "./local.sqlite"},
        "backend": {"provider": provider, "url": url},
        "actor": {"id": actor_id, "role": role, "branch_id": branch_id},
        "policy_path": None,
    }
    config_path = workspace_config_path(name)
    config_path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    return config_path


def _parse_store(store_data: Any, config_path: Path) -> StoreConfig:
    if not isinstance(store_data, dict):
        raise WorkspaceError("Invalid workspace store configuration.")
    sqlite_path_raw = store_data.get("sqlite_path")
    if not sqlite_path_raw:
        raise WorkspaceError("Workspace store.sqlite_path is required.")
    sqlite_path = _resolve_path(sqlite_path_raw, config_path)
    if sqlite_path is None:
        raise WorkspaceError("Workspace store.sqlite_path must be a string.")
    return StoreConfig(sqlite_path=sqlite_path)


def _resolve_path(raw: Any, config_path: Path) -> Path | None:
    if not isinstance(raw, str):
        return None
    raw_path = Path(raw)
    if raw_path.is_absolute():
        return raw_path
    workspace_dir = config_path.parent
    if raw_path.parts and raw_path.parts[0] == WORKSPACES_DIR.name:
        # Paths written from the repository root, e.g. "workspaces/demo/local.sqlite".
        return (workspace_dir.parent.parent / raw_path).resolve()
    return (workspace_dir / raw_path).resolve()


def _parse_backend(backend_data: Any) -> BackendConfig:
    if backend_data is None:
        return BackendConfig(provider="local", url=None)
    if not isinstance(backend_data, dict):
        raise WorkspaceError("Invalid workspace backend configuration.")
    provider = backend_data.get("provider") or "local"
    if provider not in BACKEND_PROVIDERS:
        raise WorkspaceError(f"Workspace backend.provider must be one of: {', '.join(BACKEND_PROVIDERS)}")
    url = backend_data.get("url")
    if provider == "supabase" and not url:
        raise WorkspaceError("Workspace backend.url is required for the supabase provider.")
    return BackendConfig(provider=provider, url=url)


def _parse_actor(actor_data: Any) -> ActorConfig:
    if actor_data is None:
        return ActorConfig(id=None, role=Role.GUEST.value, branch_id=None)
    if not isinstance(actor_data, dict):
        raise WorkspaceError("Invalid workspace actor configuration.")
    role = actor_data.get("role") or Role.GUEST.value
    if role not in [r.value for r in Role]:
        raise WorkspaceError(f"Workspace actor.role is not a known role: {role}")
    actor_id = actor_data.get("id")
    branch_id = actor_data.get("branch_id")
    return ActorConfig(
        id=str(actor_id) if actor_id else None,
        role=role,
        branch_id=str(branch_id) if branch_id else None,
    )


def _parse_policy_path(raw: Any, config_path: Path) -> Path:
    if raw is None:
        return POLICY_PATH
    resolved = _resolve_path(raw, config_path)
    if resolved is None:
        raise WorkspaceError("Workspace policy_path must be a string.")
    return resolved
