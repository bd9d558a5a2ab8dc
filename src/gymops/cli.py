from __future__ import annotations

import os
import shutil
from pathlib import Path

import typer

from gymops import __version__
from gymops.adapters.supabase.client import SupabaseClient
from gymops.config import (
    POLICY_PATH,
    SCHEMA_PATH,
    SUPABASE_KEY_ENV,
    WorkspaceConfig,
    WorkspaceError,
    ensure_workspaces_dir,
    load_workspace,
    set_current_workspace,
    workspace_config_path,
    write_workspace_config,
)
from gymops.domain import rules
from gymops.domain.access import PolicyError, load_policy
from gymops.domain.models import FollowUpData, MemberData
from gymops.domain.rows import RowMappingError
from gymops.domain.rules import ValidationError
from gymops.domain.stages import FunnelStage, LeadSource, LeadStatus, MembershipStatus
from gymops.logs import configure_logging
from gymops.services import exports, leads
from gymops.services.authorization import AuthorizationEngine
from gymops.services.conversion import LeadConversionWorkflow
from gymops.services.events import EventLogger
from gymops.services.remote import RemoteDataService, RemoteError
from gymops.services.scoring import LeadScorer, high_priority_leads
from gymops.services.utils import today_iso, utc_now
from gymops.store.local import LocalDataService
from gymops.store.migrations import load_schema
from gymops.store.sqlite import SqliteStore

app = typer.Typer(help="Gym operations CLI")
workspace_app = typer.Typer(help="Workspace management")
lead_app = typer.Typer(help="Lead pipeline and conversion")
access_app = typer.Typer(help="Role and permission checks")
schema_app = typer.Typer(help="Schema operations")
export_app = typer.Typer(help="Exports")

app.add_typer(workspace_app, name="workspace")
app.add_typer(lead_app, name="lead")
app.add_typer(access_app, name="access")
app.add_typer(schema_app, name="schema")
app.add_typer(export_app, name="export")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@app.callback()
def main_callback(
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON lines."),
):
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    if log_level.upper() not in LOG_LEVELS:
        raise typer.BadParameter(f"--log-level must be one of: {', '.join(LOG_LEVELS)}")
    configure_logging(log_level, json_output=log_json)


@app.command("init")
def init() -> None:
    """Initialize directories for workspaces and outputs."""
    ensure_workspaces_dir()
    Path("data").mkdir(exist_ok=True)
    Path("exports").mkdir(exist_ok=True)
    typer.echo("Initialized gymops directories.")


@workspace_app.command("add")
def workspace_add(
    name: str = typer.Argument(...),
    provider: str = typer.Option("local", "--provider", help="local or supabase."),
    url: str | None = typer.Option(None, "--url", help="Supabase project URL."),
    role: str = typer.Option("staff", "--role", help="Role of the operator using this workspace."),
    branch: str | None = typer.Option(None, "--branch", help="Default branch ID."),
    actor_id: str | None = typer.Option(None, "--actor-id", help="Operator account ID."),
    use: bool = typer.Option(True, "--use/--no-use", help="Set as current workspace."),
    force: bool = typer.Option(
        False, "--force", help="Overwrite existing workspace config if it exists."
    ),
) -> None:
    config_path = workspace_config_path(name)
    if config_path.exists() and not force:
        raise typer.BadParameter(
            f"Workspace already exists: {config_path}. Use --force to overwrite."
        )
    config_path = write_workspace_config(
        name, provider=provider, url=url, role=role, branch_id=branch, actor_id=actor_id
    )
    try:
        load_workspace(name)
    except WorkspaceError as exc:
        config_path.unlink()
        _exit_with_error(str(exc))
    if use:
        set_current_workspace(name)
    typer.echo(f"Workspace created: {config_path}")


@workspace_app.command("use")
def workspace_use(name: str = typer.Argument(...)) -> None:
    if not workspace_config_path(name).exists():
        raise typer.BadParameter(f"Workspace config not found: {workspace_config_path(name)}")
    set_current_workspace(name)
    typer.echo(f"Active workspace: {name}")


@schema_app.command("apply")
def schema_apply() -> None:
    ws = _load_workspace()
    if ws.backend.provider != "local":
        _exit_with_error("Schema apply only targets the local store.")
    store = SqliteStore(ws.store.sqlite_path)
    store.apply_schema(SCHEMA_PATH)
    typer.echo("Applied schema to local SQLite.")


@lead_app.command("add")
def lead_add(
    name: str = typer.Option(..., "--name"),
    email: str | None = typer.Option(None, "--email"),
    phone: str | None = typer.Option(None, "--phone"),
    source: str = typer.Option(LeadSource.WEBSITE.value, "--source"),
    status: str = typer.Option(LeadStatus.NEW.value, "--status"),
    stage: str = typer.Option(FunnelStage.COLD.value, "--stage"),
    assigned_to: str | None = typer.Option(None, "--assigned-to"),
    branch: str | None = typer.Option(None, "--branch"),
    follow_up: str | None = typer.Option(None, "--follow-up", help="ISO 8601 date or time."),
    notes: str | None = typer.Option(None, "--notes"),
    interests: str | None = typer.Option(None, "--interests", help="Comma-separated, e.g. yoga,pilates."),
) -> None:
    ws = _load_workspace()
    _require_permission(ws, "manage_leads")
    remote = _remote(ws)
    try:
        lead = leads.add_lead(
            remote,
            name=name,
            email=email,
            phone=phone,
            source=source,
            status=status,
            funnel_stage=stage,
            assigned_to=assigned_to,
            branch_id=branch or ws.actor.branch_id,
            notes=notes,
            follow_up_date=rules.parse_datetime(follow_up, "follow-up"),
            interests=(interests or "").split(","),
        )
    except (ValidationError, RemoteError, RowMappingError) as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Created lead: {lead.id}")


@lead_app.command("list")
def lead_list(
    status: str | None = typer.Option(None, "--status"),
    stage: str | None = typer.Option(None, "--stage"),
    branch: str | None = typer.Option(None, "--branch"),
) -> None:
    ws = _load_workspace()
    _require_permission(ws, "access_crm")
    try:
        rows = leads.list_leads(_remote(ws), status=status, funnel_stage=stage, branch_id=branch)
    except (RemoteError, RowMappingError) as exc:
        _exit_with_error(str(exc))
    if not rows:
        typer.echo("No leads.")
        return
    for lead in rows:
        typer.echo(
            f"{lead.id} | {lead.name} | {lead.status} | {lead.funnel_stage} | {lead.follow_up_date or ''}"
        )


@lead_app.command("show")
def lead_show(lead_id: str = typer.Argument(...)) -> None:
    ws = _load_workspace()
    _require_permission(ws, "access_crm")
    try:
        lead = leads.get_lead(_remote(ws), lead_id)
    except (RemoteError, RowMappingError) as exc:
        _exit_with_error(str(exc))
    if lead is None:
        _exit_with_error("Lead not found")
    for field, value in (
        ("id", lead.id),
        ("name", lead.name),
        ("email", lead.email),
        ("phone", lead.phone),
        ("source", lead.source),
        ("status", lead.status),
        ("stage", lead.funnel_stage),
        ("branch", lead.branch_id),
        ("follow_up", lead.follow_up_date),
        ("converted", lead.conversion_date),
        ("interests", ", ".join(lead.interests) or None),
        ("score", lead.score),
        ("notes", lead.notes),
    ):
        typer.echo(f"{field}: {value if value is not None else ''}")


@lead_app.command("history")
def lead_history(lead_id: str = typer.Argument(...)) -> None:
    ws = _load_workspace()
    _require_permission(ws, "access_crm")
    try:
        records = leads.follow_up_history(_remote(ws), lead_id)
    except (RemoteError, RowMappingError) as exc:
        _exit_with_error(str(exc))
    if not records:
        typer.echo("No follow-up history.")
        return
    for record in records:
        when = record.sent_at or record.scheduled_for or ""
        typer.echo(f"{when} | {record.type} | {record.status} | {record.content}")


@lead_app.command("stage")
def lead_stage(
    lead_id: str = typer.Argument(...),
    stage: str = typer.Argument(..., help="cold, warm, hot, won or lost"),
    notes: str | None = typer.Option(None, "--notes"),
) -> None:
    ws = _load_workspace()
    _require_permission(ws, "manage_leads")
    workflow = _workflow(ws)
    try:
        ok = workflow.update_lead_stage(lead_id, stage, notes)
    except ValidationError as exc:
        _exit_with_error(str(exc))
    if not ok:
        raise typer.Exit(code=1)


@lead_app.command("follow-up")
def lead_follow_up(
    lead_id: str = typer.Argument(...),
    kind: str = typer.Option(..., "--type", help="email, sms, call, meeting or whatsapp"),
    when: str = typer.Option(..., "--when", help="ISO 8601 date or time."),
    subject: str = typer.Option(..., "--subject"),
    content: str = typer.Option(..., "--content"),
    assigned_to: str | None = typer.Option(None, "--assigned-to"),
    branch: str | None = typer.Option(None, "--branch"),
) -> None:
    ws = _load_workspace()
    _require_permission(ws, "schedule_follow_ups")
    workflow = _workflow(ws)
    try:
        scheduled_for = rules.parse_datetime(when, "when")
        ok = workflow.schedule_follow_up(
            lead_id,
            FollowUpData(
                type=kind,
                scheduled_for=scheduled_for,
                subject=subject,
                content=content,
                assigned_to=assigned_to or ws.actor.id,
                branch_id=branch or ws.actor.branch_id,
            ),
        )
    except ValidationError as exc:
        _exit_with_error(str(exc))
    if not ok:
        raise typer.Exit(code=1)


@lead_app.command("convert")
def lead_convert(
    lead_id: str = typer.Argument(...),
    email: str = typer.Option(..., "--email"),
    full_name: str = typer.Option(..., "--name"),
    membership_id: str = typer.Option(..., "--plan", help="Membership plan ID."),
    start: str | None = typer.Option(None, "--start", help="Membership start date, defaults to today (UTC)."),
    end: str | None = typer.Option(None, "--end", help="Membership end date."),
    membership_status: str = typer.Option(MembershipStatus.ACTIVE.value, "--membership-status"),
    branch: str | None = typer.Option(None, "--branch"),
    phone: str | None = typer.Option(None, "--phone"),
    address: str | None = typer.Option(None, "--address"),
    emergency_contact: str | None = typer.Option(None, "--emergency-contact"),
    notes: str | None = typer.Option(None, "--notes"),
    password: str | None = typer.Option(
        None, "--password", help="Initial password. A random one is generated when omitted."
    ),
) -> None:
    ws = _load_workspace()
    _require_permission(ws, "convert_leads")
    branch_id = branch or ws.actor.branch_id
    if not branch_id:
        raise typer.BadParameter("--branch is required when the workspace has no default branch.")
    workflow = _workflow(ws)
    try:
        member = workflow.convert_lead_to_member(
            lead_id,
            MemberData(
                email=email,
                full_name=full_name,
                branch_id=branch_id,
                membership_id=membership_id,
                membership_start_date=rules.parse_date(start, "start") or utc_now().date(),
                membership_end_date=rules.parse_date(end, "end"),
                membership_status=membership_status,
                phone=phone,
                address=address,
                emergency_contact=emergency_contact,
                notes=notes,
                password=password,
            ),
            actor_id=ws.actor.id,
        )
    except ValidationError as exc:
        _exit_with_error(str(exc))
    if member is None:
        raise typer.Exit(code=1)
    typer.echo(f"Member: {member.id}")


@lead_app.command("update")
def lead_update(
    lead_id: str = typer.Argument(...),
    name: str | None = typer.Option(None, "--name"),
    email: str | None = typer.Option(None, "--email"),
    phone: str | None = typer.Option(None, "--phone"),
    source: str | None = typer.Option(None, "--source"),
    status: str | None = typer.Option(None, "--status"),
    assigned_to: str | None = typer.Option(None, "--assigned-to"),
    branch: str | None = typer.Option(None, "--branch"),
    follow_up: str | None = typer.Option(None, "--follow-up", help="ISO 8601 date or time."),
    notes: str | None = typer.Option(None, "--notes", help="Replaces the current notes."),
    interests: str | None = typer.Option(None, "--interests", help="Comma-separated."),
) -> None:
    """Edit lead details. Use `lead stage` to move a lead through the funnel."""
    ws = _load_workspace()
    _require_permission(ws, "manage_leads")
    changes = {
        key: value
        for key, value in (
            ("name", name),
            ("email", email),
            ("phone", phone),
            ("source", source),
            ("status", status),
            ("assigned_to", assigned_to),
            ("branch_id", branch),
            ("notes", notes),
        )
        if value is not None
    }
    try:
        if follow_up is not None:
            changes["follow_up_date"] = rules.parse_datetime(follow_up, "follow-up")
        if interests is not None:
            changes["interests"] = interests.split(",")
        lead = leads.update_lead(_remote(ws), lead_id, changes)
    except (ValidationError, RemoteError, RowMappingError) as exc:
        _exit_with_error(str(exc))
    if lead is None:
        _exit_with_error("Lead not found")
    typer.echo(f"Updated lead: {lead.id}")


@lead_app.command("delete")
def lead_delete(
    lead_id: str = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    ws = _load_workspace()
    _require_permission(ws, "manage_leads")
    if not yes:
        typer.confirm(f"Delete lead {lead_id} and its follow-up history?", abort=True)
    try:
        deleted = leads.delete_lead(_remote(ws), lead_id)
    except (ValidationError, RemoteError) as exc:
        _exit_with_error(str(exc))
    if not deleted:
        _exit_with_error("Lead not found")
    typer.echo(f"Deleted lead: {lead_id}")


@lead_app.command("import")
def lead_import(
    csv_path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    branch: str | None = typer.Option(None, "--branch", help="Branch for rows without one."),
    source: str = typer.Option(LeadSource.OTHER.value, "--source", help="Source for rows without one."),
) -> None:
    """Import leads from a CSV file with a header row."""
    ws = _load_workspace()
    _require_permission(ws, "manage_leads")
    try:
        summary = leads.import_leads_csv(
            _remote(ws),
            csv_path,
            branch_id=branch or ws.actor.branch_id,
            assigned_to=ws.actor.id,
            default_source=source,
        )
    except ValidationError as exc:
        _exit_with_error(str(exc))
    for error in summary.errors:
        typer.echo(f"Skipped {error}", err=True)
    typer.echo(f"Imported {summary.imported} of {summary.total} leads ({summary.failed} failed).")
    if summary.total and not summary.imported:
        raise typer.Exit(code=1)


@lead_app.command("score")
def lead_score(
    lead_id: str | None = typer.Argument(None),
    branch: str | None = typer.Option(None, "--branch", help="Score every lead of a branch."),
) -> None:
    ws = _load_workspace()
    _require_permission(ws, "manage_leads")
    scorer = LeadScorer(_remote(ws))
    try:
        if lead_id is not None:
            score = scorer.calculate(lead_id)
            if score is None:
                _exit_with_error("Lead not found")
            typer.echo(f"{lead_id} | {score}")
            return
        branch_id = branch or ws.actor.branch_id
        if not branch_id:
            raise typer.BadParameter("Give a lead ID, --branch, or a workspace default branch.")
        scores = scorer.calculate_branch(branch_id)
    except (RemoteError, RowMappingError) as exc:
        _exit_with_error(str(exc))
    for scored_id, score in sorted(scores.items(), key=lambda item: item[1], reverse=True):
        typer.echo(f"{scored_id} | {score}")
    typer.echo(f"Scored {len(scores)} leads.")


@lead_app.command("priority")
def lead_priority(
    branch: str | None = typer.Option(None, "--branch"),
    limit: int = typer.Option(10, "--limit", min=1),
) -> None:
    """Open leads with the highest stored scores."""
    ws = _load_workspace()
    _require_permission(ws, "access_crm")
    branch_id = branch or ws.actor.branch_id
    if not branch_id:
        raise typer.BadParameter("--branch is required when the workspace has no default branch.")
    try:
        ranked = high_priority_leads(_remote(ws), branch_id, limit=limit)
    except (RemoteError, RowMappingError) as exc:
        _exit_with_error(str(exc))
    if not ranked:
        typer.echo("No open leads.")
        return
    for lead in ranked:
        score = lead.score if lead.score is not None else "-"
        typer.echo(f"{score} | {lead.id} | {lead.name} | {lead.funnel_stage}")


@lead_app.command("events")
def lead_events(
    lead_id: str | None = typer.Argument(None),
    event_type: str | None = typer.Option(None, "--type", help="e.g. lead.converted"),
) -> None:
    ws = _load_workspace()
    _require_permission(ws, "access_crm")
    events = EventLogger(path=ws.events_path, workspace=ws.name)
    found = False
    for event in events.read(entity_id=lead_id, event_type=event_type):
        found = True
        details = ", ".join(f"{key}={value}" for key, value in event["details"].items())
        typer.echo(f"{event['ts']} | {event['event_type']} | {event['entity_id']} | {details}")
    if not found:
        typer.echo("No events.")


@access_app.command("check")
def access_check(
    role: str = typer.Argument(...),
    permission: str = typer.Argument(...),
    owner: bool = typer.Option(False, "--owner", help="The actor owns the target resource."),
    policy: Path | None = typer.Option(None, "--policy", help="Access policy YAML."),
) -> None:
    engine = _engine(policy)
    allowed = engine.has_permission(role, permission, is_owner=owner)
    typer.echo("allowed" if allowed else "denied")
    if not allowed:
        raise typer.Exit(code=1)


@access_app.command("route")
def access_route(
    role: str = typer.Argument(...),
    path: str = typer.Argument(...),
    policy: Path | None = typer.Option(None, "--policy", help="Access policy YAML."),
) -> None:
    engine = _engine(policy)
    allowed = engine.has_route_access(role, path)
    typer.echo("allowed" if allowed else "denied")
    if not allowed:
        raise typer.Exit(code=1)


@access_app.command("matrix")
def access_matrix(
    policy: Path | None = typer.Option(None, "--policy", help="Access policy YAML."),
) -> None:
    engine = _engine(policy)
    roles = list(engine.policy.role_hierarchy)
    typer.echo(" | ".join(["permission", *roles]))
    for name, row in engine.matrix().items():
        typer.echo(" | ".join([name, *(row[role] for role in roles)]))


@export_app.command("excel")
def export_excel(out: str = typer.Option(..., "--out")) -> None:
    ws = _load_workspace()
    _require_permission(ws, "export_data")
    exports.export_excel(_local_store(ws), Path(out))
    typer.echo(f"Exported Excel to {out}")


@export_app.command("csv")
def export_csv(out: str = typer.Option(..., "--out")) -> None:
    ws = _load_workspace()
    _require_permission(ws, "export_data")
    exports.export_csv_tables(_local_store(ws), Path(out))
    typer.echo(f"Exported CSV tables to {out}")


@app.command("snapshot")
def snapshot() -> None:
    ws = _load_workspace()
    _require_permission(ws, "export_data")
    store = _local_store(ws)
    snapshot_dir = Path("data") / "snapshots" / today_iso()
    snapshot_dir.mkdir(parents=True, exist_ok=True)
    if ws.store.sqlite_path.exists():
        shutil.copy2(ws.store.sqlite_path, snapshot_dir / "local.sqlite")
    exports.export_csv_tables(store, snapshot_dir)
    typer.echo(f"Snapshot created at {snapshot_dir}")


def _load_workspace() -> WorkspaceConfig:
    try:
        return load_workspace()
    except WorkspaceError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc


def _engine(policy_path: Path | None = None) -> AuthorizationEngine:
    try:
        return AuthorizationEngine(load_policy(policy_path or POLICY_PATH))
    except (OSError, PolicyError) as exc:
        _exit_with_error(f"Could not load access policy: {exc}")


def _require_permission(ws: WorkspaceConfig, permission: str) -> None:
    engine = _engine(ws.policy_path)
    if not engine.has_permission(ws.actor.role, permission):
        _exit_with_error(f"Role {ws.actor.role} is not allowed to {permission.replace('_', ' ')}.")


def _remote(ws: WorkspaceConfig) -> RemoteDataService:
    if ws.backend.provider == "supabase":
        service_key = os.getenv(SUPABASE_KEY_ENV)
        if not service_key:
            _exit_with_error(f"{SUPABASE_KEY_ENV} is not set.")
        return SupabaseClient(url=ws.backend.url or "", service_key=service_key)
    return LocalDataService(_local_store(ws), load_schema(SCHEMA_PATH))


def _local_store(ws: WorkspaceConfig) -> SqliteStore:
    if ws.backend.provider != "local":
        _exit_with_error("This command needs the local store backend.")
    return SqliteStore(ws.store.sqlite_path)


def _workflow(ws: WorkspaceConfig) -> LeadConversionWorkflow:
    return LeadConversionWorkflow(
        _remote(ws),
        notifier=_notify,
        events=EventLogger(path=ws.events_path, workspace=ws.name),
    )


def _notify(level: str, message: str) -> None:
    if level == "error":
        typer.echo(f"Error: {message}", err=True)
    else:
        typer.echo(message)


def _exit_with_error(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
