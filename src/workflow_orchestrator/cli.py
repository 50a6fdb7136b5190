"""
Workflow Orchestrator CLI
"""
import functools
import json
import logging
from pathlib import Path

import click

from .bootstrap import build_runtime
from .config import Settings, configure_logging
from .core.parser import WorkflowParser
from .core.scanner import TimeoutScanner
from .exceptions import WorkflowEngineError
from .integrations.directory import UserProfile
from .models.instance import TaskStatus


logger = logging.getLogger(__name__)


def handle_errors(func):
    """将引擎异常转换为 CLI 错误输出"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except WorkflowEngineError as e:
            raise click.ClickException(str(e))
    return wrapper


def get_runtime(ctx: click.Context):
    """按需装配运行时，命令结束时关闭"""
    obj = ctx.ensure_object(dict)
    if "runtime" not in obj:
        runtime = build_runtime(obj["settings"])
        obj["runtime"] = runtime
        ctx.call_on_close(runtime.close)
    return obj["runtime"]


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


@click.group()
@click.option('--database-url', envvar='WORKFLOW_DATABASE_URL', help='SQLAlchemy database URL')
@click.option('--env-file', type=click.Path(dir_okay=False), help='Path to a .env file')
@click.option('--log-level', help='Logging level')
@click.pass_context
def cli(ctx, database_url, env_file, log_level):
    """Workflow Orchestrator CLI"""
    settings = Settings.from_env(env_file)
    if database_url:
        settings.database_url = database_url
    if log_level:
        settings.log_level = log_level
    configure_logging(settings.log_level)
    ctx.ensure_object(dict)["settings"] = settings


@cli.command('init-db')
@click.pass_context
def init_db(ctx):
    """Create the database tables"""
    runtime = get_runtime(ctx)
    click.echo(f"Initialized database {runtime.db_manager.engine.url.render_as_string(hide_password=True)}")


@cli.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--validate-only', is_flag=True, help='Only validate, do not store')
@click.pass_context
@handle_errors
def load(ctx, workflow_file, validate_only):
    """Load a workflow definition from a YAML or JSON file"""
    workflow = WorkflowParser().parse_file(Path(workflow_file))
    if validate_only:
        click.echo(f"Workflow {workflow.id} is valid ({len(workflow.activities)} activities)")
        return
    get_runtime(ctx).workflow_repository.save(workflow)
    click.echo(f"Loaded workflow: {workflow.id}")


def _workflow_flag_command(name: str, disabled: bool):
    @cli.command(name, help=f"{name.capitalize()} a workflow definition")
    @click.argument('workflow_id')
    @click.pass_context
    @handle_errors
    def command(ctx, workflow_id):
        get_runtime(ctx).engine.set_workflow_disabled(workflow_id, disabled)
        click.echo(f"Workflow {workflow_id} {name}d")
    return command


disable = _workflow_flag_command("disable", True)
enable = _workflow_flag_command("enable", False)


@cli.command()
@click.argument('workflow_id')
@click.argument('primary_key_value')
@click.option('--user', 'input_user_id', help='Initiating user ID')
@click.option('--start', 'start_now', is_flag=True, help='Start the instance right away')
@click.pass_context
@handle_errors
def create(ctx, workflow_id, primary_key_value, input_user_id, start_now):
    """Create a workflow instance for a tracked record"""
    engine = get_runtime(ctx).engine
    instance_id = engine.create_instance(workflow_id, primary_key_value, input_user_id=input_user_id)
    click.echo(f"Created instance: {instance_id}")
    if start_now:
        instance = engine.start(instance_id)
        if instance is not None:
            click.echo(f"Instance {instance_id} is {instance.status.value} at {instance.activity_id}")


@cli.command()
@click.argument('instance_id')
@click.pass_context
@handle_errors
def start(ctx, instance_id):
    """Start or advance a workflow instance"""
    instance = get_runtime(ctx).engine.start(instance_id)
    if instance is None:
        click.echo(f"Instance {instance_id} is being executed by another worker")
        return
    click.echo(f"Instance {instance_id} is {instance.status.value} at {instance.activity_id}")


def _status_command(name: str, verb: str):
    @cli.command(name, help=f"{name.capitalize()} a workflow instance")
    @click.argument('instance_id')
    @click.pass_context
    @handle_errors
    def command(ctx, instance_id):
        changed = getattr(get_runtime(ctx).engine, name)(instance_id)
        if changed:
            click.echo(f"Instance {instance_id} {verb}")
        else:
            click.echo(f"Instance {instance_id} is being executed by another worker")
    return command


suspend = _status_command("suspend", "suspended")
resume = _status_command("resume", "resumed")
abort = _status_command("abort", "aborted")


@cli.command('set-variable')
@click.argument('instance_id')
@click.argument('variable_id')
@click.argument('expression')
@click.pass_context
@handle_errors
def set_variable(ctx, instance_id, variable_id, expression):
    """Evaluate an expression into an instance variable"""
    variable = get_runtime(ctx).engine.update_instance_variable(instance_id, variable_id, expression)
    click.echo(f"{variable.variable_id} = {variable.value}")


@cli.command('update-task')
@click.argument('task_id')
@click.argument('status')
@click.option('--value', help='Value captured into the task variable')
@click.option('--remark', help='Remark')
@click.option('--user', 'user_id', help='Acting user (must be the assignee)')
@click.option('--no-advance', is_flag=True, help='Do not advance the instance')
@click.pass_context
@handle_errors
def update_task(ctx, task_id, status, value, remark, user_id, no_advance):
    """Update a user task"""
    task = get_runtime(ctx).engine.update_task(
        task_id, status, value=value, remark=remark, user_id=user_id, advance=not no_advance
    )
    click.echo(f"Task {task.id} is {task.status.value}")


@cli.command()
@click.option('--user', 'user_id', help='Assigned user')
@click.option('--instance', 'instance_id', help='Workflow instance')
@click.option('--status', 'statuses', multiple=True,
              type=click.Choice([status.value for status in TaskStatus]), help='Task status (repeatable)')
@click.pass_context
@handle_errors
def tasks(ctx, user_id, instance_id, statuses):
    """List user tasks"""
    engine = get_runtime(ctx).engine
    found = engine.find_tasks(
        user_id=user_id,
        instance_id=instance_id,
        statuses=[TaskStatus(status) for status in statuses] or None
    )
    for task in found:
        click.echo(f"{task.id}\t{task.assigned_user_id}\t{task.activity_id}\t{task.status.value}")


@cli.command('count-tasks')
@click.option('--user', 'user_id', help='Assigned user')
@click.option('--instance', 'instance_id', help='Workflow instance')
@click.option('--status', 'statuses', multiple=True,
              type=click.Choice([status.value for status in TaskStatus]), help='Task status (repeatable)')
@click.pass_context
@handle_errors
def count_tasks(ctx, user_id, instance_id, statuses):
    """Count user tasks"""
    count = get_runtime(ctx).engine.count_tasks(
        user_id=user_id,
        instance_id=instance_id,
        statuses=[TaskStatus(status) for status in statuses] or None
    )
    click.echo(str(count))


@cli.command()
@click.argument('instance_id')
@click.pass_context
@handle_errors
def show(ctx, instance_id):
    """Show an instance with its variables and events"""
    engine = get_runtime(ctx).engine
    instance = engine.get_instance(instance_id)
    _echo_json({
        "id": instance.id,
        "workflow_id": instance.workflow_id,
        "primary_key_value": instance.primary_key_value,
        "status": instance.status.value,
        "activity_id": instance.activity_id,
        "timeout_date": instance.timeout_date,
        "variables": {v.variable_id: v.value for v in engine.list_variables(instance_id)},
        "events": [
            f"{event.event_date} {event.event_type.value}: {event.description}"
            for event in engine.list_events(instance_id)
        ],
    })


@cli.command('add-user')
@click.argument('user_id')
@click.option('--email', help='Email address')
@click.option('--name', 'full_name', help='Full name')
@click.option('--group', 'groups', multiple=True, help='Group to join (repeatable)')
@click.pass_context
def add_user(ctx, user_id, email, full_name, groups):
    """Add or update a directory user"""
    directory = get_runtime(ctx).directory
    directory.add_user(UserProfile(user_id=user_id, username=user_id, email=email, full_name=full_name))
    for group_id in groups:
        directory.add_membership(group_id, user_id)
    click.echo(f"Saved user: {user_id}")


@cli.command()
@click.option('--interval', type=float, help='Sweep repeatedly, sleeping this many seconds')
@click.pass_context
def sweep(ctx, interval):
    """Re-start instances whose wait deadline has passed"""
    engine = get_runtime(ctx).engine
    if interval is None:
        started = engine.sweep_elapsed_instances()
        click.echo(f"Started {started} elapsed instance(s)")
        return

    scanner = TimeoutScanner(engine, interval=interval)
    try:
        scanner.run_forever()
    except KeyboardInterrupt:
        click.echo("Timeout scanner stopped")


@cli.command()
@click.option('--host', help='Host to bind to')
@click.option('--port', type=int, help='Port to bind to')
@click.pass_context
def serve(ctx, host, port):
    """Start the API server"""
    import uvicorn
    from .api.app import create_app

    settings = ctx.obj["settings"]
    host = host or settings.api_host
    port = port or settings.api_port
    click.echo(f"Starting API server on {host}:{port}")
    app = create_app(runtime_factory=functools.partial(build_runtime, settings))
    uvicorn.run(app, host=host, port=port)


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
