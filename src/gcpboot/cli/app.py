# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/cli/app.py
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from gcpboot.bootstrap.bootstrapper import Bootstrapper
from gcpboot.bootstrap.cleanup import CleanupOptions, ProjectCleanup
from gcpboot.bootstrap.environment import DEFAULT_EXPERIMENTS, Environment, RegistryType
from gcpboot.bootstrap.infra_file import write_infra_file
from gcpboot.bootstrap.step_logger import StepLogger
from gcpboot.config import settings
from gcpboot.config.loader import YamlInstallConfigManager
from gcpboot.errors import GcpBootError, StepError
from gcpboot.logging.log import init_logging
from gcpboot.observers.dispatcher import EventBus
from gcpboot.observers.jsonfile import JsonFileObserver
from gcpboot.observers.logger import LoggerObserver
from gcpboot.portal.client import PortalClient
from gcpboot.provisioning.gcp import GcpProvisioningClient
from gcpboot.remote.credentials import CredentialResolver
from gcpboot.remote.ssh import SSHRemoteExecutor


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Bootstrap Codesphere clusters on Google Cloud")

JUMPBOX_SSH_HINT = (
    "ssh-add $SSH_KEY_PATH; ssh -o StrictHostKeyChecking=no -o ForwardAgent=yes "
    "-o SendEnv=OMS_PORTAL_API_KEY root@{ip}"
)


def _event_bus(logger, log_path: Path) -> EventBus:
    bus = EventBus()
    bus.subscribe(LoggerObserver(logger))
    bus.subscribe(JsonFileObserver(log_path.with_suffix(".events.jsonl")))
    return bus


def _banner(title: str, run_id: str, log_path: Path) -> None:
    typer.echo("")
    typer.secho(title, bold=True)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo("")


# ------------------------------------------------------------------------------
# bootstrap-gcp
# ------------------------------------------------------------------------------

@app.command("bootstrap-gcp")
def bootstrap_gcp(
    project_name: str = typer.Option(..., "--project-name", help="Unique GCP project name"),
    billing_account: str = typer.Option(..., "--billing-account", help="GCP billing account ID"),
    base_domain: str = typer.Option(..., "--base-domain", help="Base domain for Codesphere"),
    github_app_client_id: str = typer.Option("", "--github-app-client-id"),
    github_app_client_secret: str = typer.Option("", "--github-app-client-secret"),
    github_pat: str = typer.Option(
        "", "--github-pat", help="GitHub PAT for direct image access (package read scope)"
    ),
    registry_user: str = typer.Option("", "--registry-user", help="Registry username (GitHub registry type only)"),
    registry_type: RegistryType = typer.Option(RegistryType.LOCAL_CONTAINER, "--registry-type"),
    secrets_dir: str = typer.Option("/etc/codesphere/secrets", "--secrets-dir"),
    folder_id: str = typer.Option("", "--folder-id"),
    ssh_public_key_path: str = typer.Option("~/.ssh/id_rsa.pub", "--ssh-public-key-path"),
    ssh_private_key_path: str = typer.Option("~/.ssh/id_rsa", "--ssh-private-key-path"),
    preemptible: bool = typer.Option(False, "--preemptible"),
    datacenter_id: int = typer.Option(1, "--datacenter-id"),
    custom_pg_ip: str = typer.Option("", "--custom-pg-ip"),
    install_config: str = typer.Option("config.yaml", "--install-config"),
    secrets_file: str = typer.Option("prod.vault.yaml", "--secrets-file"),
    region: str = typer.Option("europe-west4", "--region"),
    zone: str = typer.Option("europe-west4-a", "--zone"),
    dns_project_id: str = typer.Option("", "--dns-project-id"),
    dns_project_service_account: str = typer.Option("", "--dns-project-service-account"),
    dns_zone_name: str = typer.Option("oms-testing", "--dns-zone-name"),
    install_version: str = typer.Option("", "--install-version"),
    install_hash: str = typer.Option("", "--install-hash"),
    install_skip_steps: Optional[List[str]] = typer.Option(None, "--install-skip-steps", "-s"),
    write_config: bool = typer.Option(True, "--write-config/--no-write-config"),
    ssh_quiet: bool = typer.Option(True, "--ssh-quiet/--no-ssh-quiet"),
    experiments: Optional[List[str]] = typer.Option(None, "--experiments"),
    feature_flags: Optional[List[str]] = typer.Option(None, "--feature-flags"),
    deadline: Optional[float] = typer.Option(
        None, "--deadline", help="Stop between steps once this many seconds have passed"
    ),
    debug: bool = typer.Option(False, "--debug"),
):
    logger, run_id, log_path = init_logging(verbose=debug)
    _banner("GCP Bootstrap Started", run_id, log_path)

    if github_pat:
        registry_type = RegistryType.GITHUB
        if not registry_user:
            raise typer.BadParameter("registry-user must be set when using GitHub registry type")

    env = Environment(
        project_name=project_name,
        billing_account=billing_account,
        base_domain=base_domain,
        folder_id=folder_id,
        dns_project_id=dns_project_id,
        dns_project_service_account=dns_project_service_account,
        region=region,
        zone=zone,
        dns_zone_name=dns_zone_name,
        ssh_public_key_path=ssh_public_key_path,
        ssh_private_key_path=ssh_private_key_path,
        preemptible=preemptible,
        write_config=write_config,
        registry_type=registry_type,
        github_pat=github_pat,
        registry_user=registry_user,
        github_app_client_id=github_app_client_id,
        github_app_client_secret=github_app_client_secret,
        install_version=install_version,
        install_hash=install_hash,
        install_skip_steps=list(install_skip_steps or []),
        datacenter_id=datacenter_id,
        secrets_dir=secrets_dir,
        install_config_path=install_config,
        secrets_file_path=secrets_file,
        experiments=list(experiments) if experiments else list(DEFAULT_EXPERIMENTS),
        feature_flags=list(feature_flags or []),
        custom_pg_ip=custom_pg_ip,
    )

    bus = _event_bus(logger, log_path)
    stlog = StepLogger(bus, run_id=run_id, project=project_name)
    executor = SSHRemoteExecutor(CredentialResolver(ssh_private_key_path), quiet=ssh_quiet)

    bootstrapper = Bootstrapper(
        env,
        client=GcpProvisioningClient(settings.google_credentials_file()),
        executor=executor,
        config_manager=YamlInstallConfigManager(),
        stlog=stlog,
        portal=PortalClient(),
        deadline_seconds=deadline,
    )

    try:
        bootstrapper.bootstrap()
    except GcpBootError as exc:
        env_json = json.dumps(env.to_infra_dict(), indent=2)
        if env.jumpbox is not None and env.jumpbox.external_ip:
            logger.info("To debug on the jumpbox host:\n%s", JUMPBOX_SSH_HINT.format(ip=env.jumpbox.external_ip))
        logger.debug("failed step: %s", exc.step if isinstance(exc, StepError) else "-")
        typer.secho(f"failed to bootstrap GCP: {exc}, env: {env_json}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    infra_path = write_infra_file(env)

    typer.secho("\nGCP infrastructure bootstrapped successfully!", fg=typer.colors.GREEN, bold=True)
    typer.echo(json.dumps(env.to_infra_dict(), indent=2))
    typer.echo(f"Infrastructure details written to {infra_path}")
    typer.echo("Access the jumpbox using:\n" + JUMPBOX_SSH_HINT.format(ip=env.jumpbox.external_ip))

    if env.install_version:
        typer.echo(f"Access Codesphere in your web browser at https://cs.{env.base_domain}")
        return

    package_name = "<package-name>-installer"
    install_cmd = "oms-cli install codesphere -c /etc/codesphere/config.yaml -k /etc/codesphere/secrets/age_key.txt"
    if env.registry_type == RegistryType.GITHUB:
        typer.echo(
            "You set a GitHub PAT for direct image access. "
            "Make sure to use a lite package, as VM root disk sizes are reduced."
        )
        install_cmd += " -s load-container-images"
        package_name += "-lite"
    typer.echo(f"example install command (run from jumpbox):\n{install_cmd} -p {package_name}.tar.gz")


# ------------------------------------------------------------------------------
# cleanup
# ------------------------------------------------------------------------------

def _prompt_project_id(project_id: str) -> str:
    typer.echo("This action cannot be undone.")
    return typer.prompt("Type the project ID to confirm deletion")


@app.command()
def cleanup(
    project_id: str = typer.Option("", "--project-id", help="Project to delete (default: from infra file)"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompt and oms-managed check"),
    skip_dns_cleanup: bool = typer.Option(False, "--skip-dns-cleanup"),
    base_domain: str = typer.Option("", "--base-domain"),
    dns_zone_name: str = typer.Option("", "--dns-zone-name"),
    debug: bool = typer.Option(False, "--debug"),
):
    logger, run_id, log_path = init_logging(verbose=debug)
    _banner("GCP Cleanup Started", run_id, log_path)

    bus = _event_bus(logger, log_path)
    stlog = StepLogger(bus, run_id=run_id, project=project_id or None)

    opts = CleanupOptions(
        project_id=project_id,
        force=force,
        skip_dns_cleanup=skip_dns_cleanup,
        base_domain=base_domain,
        dns_zone_name=dns_zone_name,
    )
    runner = ProjectCleanup(
        GcpProvisioningClient(settings.google_credentials_file()),
        opts,
        stlog=stlog,
        confirm=_prompt_project_id,
    )

    try:
        deleted = runner.run()
    except GcpBootError as exc:
        typer.secho(f"cleanup failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.secho("\nGCP project cleanup completed successfully!", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"Project '{deleted}' has been scheduled for deletion.")
    typer.echo(
        "Note: GCP projects are retained for 30 days before permanent deletion. "
        "You can restore the project within this period from the GCP Console."
    )


if __name__ == "__main__":
    app()
