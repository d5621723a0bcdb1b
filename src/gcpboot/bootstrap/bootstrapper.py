# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/bootstrap/bootstrapper.py

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from gcpboot.config import settings
from gcpboot.config.loader import InstallConfigManager
from gcpboot.config.models import CephHost, K8sNode, PostgresPrimaryConfig
from gcpboot.errors import (
    BootstrapTimeoutError,
    ConfigurationError,
    GcpBootError,
    ProvisioningError,
    StepError,
    is_already_exists,
)
from gcpboot.fleet.provisioner import DEFAULT_BOOT_DISK_GB, ConcurrentFleetProvisioner
from gcpboot.fleet.specs import DEFAULT_FLEET, VMSpec
from gcpboot.node.node import Node
from gcpboot.portal.client import PortalClient
from gcpboot.provisioning.client import ProvisioningClient
from gcpboot.provisioning.dns import gateway_records
from gcpboot.provisioning.models import FirewallRule
from gcpboot.remote.executor import RemoteExecutor
from gcpboot.utils.helpers import expand_path, short_id, truncate
from gcpboot.utils.retry import RetryPolicy, retry_call
from .environment import Environment, RegistryType
from .k0s_script import REMOTE_SCRIPT_PATH, SCRIPT_NAME, render_k0s_config_script
from .step_logger import StepLogger

log = logging.getLogger("gcpboot")

CODESPHERE_PRODUCT = "codesphere"
INSTALLER_ARTIFACT = "installer.tar.gz"
INSTALLER_LITE_ARTIFACT = "installer-lite.tar.gz"

REQUIRED_APIS = [
    "compute.googleapis.com",
    "serviceusage.googleapis.com",
    "artifactregistry.googleapis.com",
    "dns.googleapis.com",
]

REGISTRY_REPO_NAME = "codesphere-registry"
CLOUD_CONTROLLER_SA = "cloud-controller"
REGISTRY_WRITER_SA = "artifact-registry-writer"

SUBNET_CIDR = "10.10.0.0/20"
GITHUB_BOOT_DISK_GB = 50
REMOTE_CONFIG_PATH = "/etc/codesphere/config.yaml"
LB_IP_ANNOTATION = "cloud.google.com/load-balancer-ipv4"

SA_KEY_RETRY = RetryPolicy(attempts=5, delay=5.0)
IAM_RETRY = RetryPolicy(attempts=5, delay=5.0)
ROOT_LOGIN_RETRY = RetryPolicy(attempts=3, delay=10.0)
SSH_READY_TIMEOUT = 30.0

Step = Tuple[str, str, Callable[[], None]]


def _billing_account_name(account: str) -> str:
    return account if account.startswith("billingAccounts/") else f"billingAccounts/{account}"


class Bootstrapper:
    """
    Converges a GCP project into an installable Codesphere cluster.

    bootstrap() runs a fixed sequence of steps against one Environment. Every
    step reads before it writes, so a failed run is recovered by running it
    again. The first failing step stops the run and surfaces as StepError with
    the partially filled Environment attached.
    """

    def __init__(
        self,
        env: Environment,
        *,
        client: ProvisioningClient,
        executor: RemoteExecutor,
        config_manager: InstallConfigManager,
        stlog: Optional[StepLogger] = None,
        portal: Optional[PortalClient] = None,
        fleet_specs: Sequence[VMSpec] = DEFAULT_FLEET,
        workdir: Optional[Path] = None,
        deadline_seconds: Optional[float] = None,
        ssh_ready_timeout: float = SSH_READY_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.env = env
        self.client = client
        self.executor = executor
        self.config_manager = config_manager
        self.stlog = stlog or StepLogger(project=env.project_name)
        self.portal = portal
        self.fleet_specs = list(fleet_specs)
        self.workdir = Path(workdir) if workdir else settings.workdir()
        self.deadline_seconds = deadline_seconds
        self.ssh_ready_timeout = ssh_ready_timeout
        self.sleep = sleep
        self.clock = clock

    # ------------------------------------------------------------------
    # pipeline
    # ------------------------------------------------------------------

    def steps(self) -> List[Step]:
        """(name, action, fn) for every step this run executes, in order."""
        env = self.env
        steps: List[Step] = []

        if env.install_version:
            steps.append(("Validate package to install", "validate package to install", self.validate_package_name))

        steps += [
            ("Ensure install config", "ensure install config", self.ensure_install_config),
            ("Ensure secrets", "ensure secrets", self.ensure_secrets),
            ("Ensure project", "ensure GCP project", self.ensure_project),
            ("Ensure billing", "ensure billing is enabled", self.ensure_billing),
            ("Ensure APIs enabled", "enable required APIs", self.ensure_apis_enabled),
        ]

        if env.registry_type == RegistryType.ARTIFACT_REGISTRY:
            steps.append(("Ensure artifact registry", "ensure artifact registry", self.ensure_artifact_registry))

        steps += [
            ("Ensure service accounts", "ensure service accounts", self.ensure_service_accounts),
            ("Ensure IAM roles", "ensure IAM roles", self.ensure_iam_roles),
            ("Ensure VPC", "ensure VPC", self.ensure_vpc),
            ("Ensure firewall rules", "ensure firewall rules", self.ensure_firewall_rules),
            ("Ensure compute instances", "ensure compute instances", self.ensure_compute_instances),
            ("Ensure gateway IP addresses", "ensure external IP addresses", self.ensure_gateway_ip_addresses),
            ("Ensure root login enabled", "ensure root login is enabled", self.ensure_root_login_enabled),
            ("Ensure jumpbox configured", "ensure jumpbox is configured", self.ensure_jumpbox_configured),
            ("Ensure hosts are configured", "ensure hosts are configured", self.ensure_hosts_configured),
        ]

        if env.registry_type == RegistryType.LOCAL_CONTAINER:
            steps.append(
                ("Ensure local container registry", "ensure local container registry", self.ensure_local_container_registry)
            )
        if env.registry_type == RegistryType.GITHUB:
            steps.append(
                ("Ensure GitHub access configured", "configure GitHub access", self.ensure_github_access_configured)
            )

        if env.write_config:
            steps += [
                ("Update install config", "update install config", self.update_install_config),
                ("Ensure age key", "ensure age key", self.ensure_age_key),
                ("Encrypt vault", "encrypt vault", self.encrypt_vault),
            ]

        steps += [
            ("Ensure DNS records", "ensure DNS records", self.ensure_dns_records),
            ("Generate k0s config script", "generate k0s config script", self.generate_k0s_config_script),
        ]

        if env.install_version:
            steps += [
                ("Install Codesphere", "install Codesphere", self.install_codesphere),
                ("Run k0s config script", "run k0s config script", self.run_k0s_config_script),
            ]

        return steps

    def bootstrap(self) -> Environment:
        started = self.clock()
        for name, action, fn in self.steps():
            self._check_deadline(started, name)
            try:
                self.stlog.step(name, fn)
            except Exception as exc:
                raise StepError(name, action, exc, env=self.env) from exc
        return self.env

    def _check_deadline(self, started: float, next_step: str) -> None:
        if self.deadline_seconds is None:
            return
        elapsed = self.clock() - started
        if elapsed > self.deadline_seconds:
            raise BootstrapTimeoutError(
                f"bootstrap exceeded its deadline of {self.deadline_seconds:.0f}s "
                f"after {elapsed:.0f}s, before step '{next_step}'"
            )

    def _retry(self, fn: Callable[[], object], policy: RetryPolicy, name: str):
        return retry_call(fn, policy=policy, on_retry=self.stlog.log_retry, sleep=self.sleep, name=name)

    # ------------------------------------------------------------------
    # topology accessors
    # ------------------------------------------------------------------

    def _jumpbox(self) -> Node:
        if self.env.jumpbox is None:
            raise GcpBootError("jumpbox has not been provisioned")
        return self.env.jumpbox

    def _postgres(self) -> Node:
        if self.env.postgres_node is None:
            raise GcpBootError("postgres node has not been provisioned")
        return self.env.postgres_node

    def _first_control_plane(self) -> Node:
        if not self.env.control_plane_nodes:
            raise GcpBootError("no control plane nodes have been provisioned")
        return self.env.control_plane_nodes[0]

    # ------------------------------------------------------------------
    # package & install config
    # ------------------------------------------------------------------

    def _installer_artifact(self) -> str:
        if self.env.registry_type == RegistryType.GITHUB:
            return INSTALLER_LITE_ARTIFACT
        return INSTALLER_ARTIFACT

    def validate_package_name(self) -> None:
        if self.portal is None:
            raise ConfigurationError("portal client is required to validate the install package")

        build = self.portal.get_build(CODESPHERE_PRODUCT, self.env.install_version, self.env.install_hash)
        required = self._installer_artifact()
        filenames = build.artifact_filenames()
        if required not in filenames:
            raise ConfigurationError(
                f"specified package does not contain required installer artifact {required}. "
                f"Existing artifacts: {', '.join(filenames)}"
            )
        self.stlog.logf("Package %s (%s) contains %s", build.version, build.hash, required)

    def ensure_install_config(self) -> None:
        path = self.env.install_config_path
        if os.path.isfile(path):
            self.config_manager.load_install_config_from_file(path)
            self.env.existing_config_used = True
        else:
            self.config_manager.apply_profile("dev")
        self.env.install_config = self.config_manager.config

    def ensure_secrets(self) -> None:
        path = self.env.secrets_file_path
        if os.path.isfile(path):
            self.config_manager.load_vault_from_file(path)
            self.config_manager.merge_vault_into_config()
        self.env.install_config = self.config_manager.config

    # ------------------------------------------------------------------
    # project level resources
    # ------------------------------------------------------------------

    def ensure_project(self) -> None:
        env = self.env
        existing = self.client.get_project_by_name(env.folder_id, env.project_name)
        if existing is not None:
            env.project_id = existing.project_id
            env.project_display_name = existing.display_name
            self.stlog.logf("Using existing project %s", existing.project_id)
            return

        parent = f"folders/{env.folder_id}" if env.folder_id else ""
        project_id = self.client.create_project_id(env.project_name)
        self.client.create_project(parent, project_id, env.project_name)
        env.project_id = project_id
        env.project_display_name = env.project_name
        self.stlog.logf("Created project %s", project_id)

    def ensure_billing(self) -> None:
        env = self.env
        target = _billing_account_name(env.billing_account)
        info = self.client.get_billing_info(env.project_id)
        if info.billing_enabled and _billing_account_name(info.billing_account_name) == target:
            return
        self.client.enable_billing(env.project_id, target)

    def ensure_apis_enabled(self) -> None:
        self.client.enable_apis(self.env.project_id, REQUIRED_APIS, logf=self.stlog.logf)

    def ensure_artifact_registry(self) -> None:
        env = self.env
        repo = self.client.get_artifact_registry(env.project_id, env.region, REGISTRY_REPO_NAME)
        if repo is None:
            try:
                repo = self.client.create_artifact_registry(env.project_id, env.region, REGISTRY_REPO_NAME)
            except Exception as exc:
                if not is_already_exists(exc):
                    raise
                repo = self.client.get_artifact_registry(env.project_id, env.region, REGISTRY_REPO_NAME)
        if repo is None or not repo.registry_uri:
            raise ProvisioningError(f"artifact registry {REGISTRY_REPO_NAME} has no registry URI")
        env.install_config.registry.server = repo.registry_uri

    def ensure_service_accounts(self) -> None:
        env = self.env
        self.client.create_service_account(env.project_id, CLOUD_CONTROLLER_SA, CLOUD_CONTROLLER_SA)

        if env.registry_type != RegistryType.ARTIFACT_REGISTRY:
            return

        email, created = self.client.create_service_account(env.project_id, REGISTRY_WRITER_SA, REGISTRY_WRITER_SA)
        registry = env.install_config.registry
        if not created and registry.password:
            # reuse the key we already hold instead of minting another one
            return

        key = self._retry(
            lambda: self.client.create_service_account_key(env.project_id, email),
            SA_KEY_RETRY,
            f"create key for service account {email}",
        )
        registry.username = "_json_key_base64"
        registry.password = key

    def _assign_roles(self, service_account: str, roles: List[str]) -> None:
        project_id = self.env.project_id
        self._retry(
            lambda: self.client.assign_iam_role(project_id, service_account, project_id, roles),
            IAM_RETRY,
            f"assign roles {roles} to service account {service_account}",
        )

    def ensure_iam_roles(self) -> None:
        self._assign_roles(CLOUD_CONTROLLER_SA, ["roles/compute.admin"])
        self._ensure_dns_permissions()
        if self.env.registry_type == RegistryType.ARTIFACT_REGISTRY:
            self._assign_roles(REGISTRY_WRITER_SA, ["roles/artifactregistry.writer"])

    def _ensure_dns_permissions(self) -> None:
        env = self.env
        if not env.dns_project_id:
            self._assign_roles(CLOUD_CONTROLLER_SA, ["roles/dns.admin"])
            return

        if not env.dns_project_service_account:
            raise ConfigurationError(
                "dns project service account with role roles/dns.admin must be provided when dns project id is set"
            )
        try:
            self.client.grant_impersonation(
                CLOUD_CONTROLLER_SA, env.project_id, env.dns_project_service_account, env.dns_project_id
            )
        except Exception as exc:
            raise ProvisioningError(
                f"failed to grant impersonation on dns project {env.dns_project_id} "
                f"to cloud-controller service account: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # network
    # ------------------------------------------------------------------

    def _network_name(self) -> str:
        return f"{self.env.project_id}-vpc"

    def ensure_vpc(self) -> None:
        p, r = self.env.project_id, self.env.region
        self.client.create_vpc(
            p,
            r,
            network=self._network_name(),
            subnet=f"{p}-{r}-subnet",
            router=f"{p}-router",
            nat=f"{p}-nat-gateway",
        )

    def firewall_rules(self) -> List[FirewallRule]:
        network = f"projects/{self.env.project_id}/global/networks/{self._network_name()}"
        return [
            FirewallRule(
                name="allow-ssh-ext",
                network=network,
                allowed=[{"protocol": "tcp", "ports": ["22"]}],
                source_ranges=["0.0.0.0/0"],
                target_tags=["ssh"],
                description="Allow external SSH to Jumpbox",
            ),
            FirewallRule(
                name="allow-internal",
                network=network,
                allowed=[{"protocol": "all"}],
                source_ranges=[SUBNET_CIDR],
                description="Allow all internal traffic",
            ),
            FirewallRule(
                name="allow-all-egress",
                network=network,
                direction="EGRESS",
                allowed=[{"protocol": "all"}],
                destination_ranges=["0.0.0.0/0"],
                description="Allow all egress",
            ),
            FirewallRule(
                name="allow-ingress-web",
                network=network,
                allowed=[{"protocol": "tcp", "ports": ["80", "443"]}],
                source_ranges=["0.0.0.0/0"],
                description="Allow HTTP/HTTPS ingress",
            ),
            FirewallRule(
                name="allow-ingress-postgres",
                network=network,
                allowed=[{"protocol": "tcp", "ports": ["5432"]}],
                source_ranges=["0.0.0.0/0"],
                target_tags=["postgres"],
                description="Allow external access to PostgreSQL",
            ),
        ]

    def ensure_firewall_rules(self) -> None:
        for rule in self.firewall_rules():
            try:
                self.client.create_firewall_rule(self.env.project_id, rule)
            except Exception as exc:
                if not is_already_exists(exc):
                    raise ProvisioningError(f"failed to create firewall rule {rule.name}: {exc}") from exc

    # ------------------------------------------------------------------
    # compute
    # ------------------------------------------------------------------

    def _read_ssh_public_key(self) -> str:
        path = expand_path(self.env.ssh_public_key_path)
        try:
            key = path.read_text().strip()
        except OSError as exc:
            raise ConfigurationError(f"error reading SSH key from {path}: {exc}") from exc
        if not key:
            raise ConfigurationError(f"SSH key at {path} is empty")
        return key

    def ensure_compute_instances(self) -> None:
        env = self.env
        boot_disk_gb = GITHUB_BOOT_DISK_GB if env.registry_type == RegistryType.GITHUB else DEFAULT_BOOT_DISK_GB
        provisioner = ConcurrentFleetProvisioner(
            self.client,
            self.executor,
            project_id=env.project_id,
            region=env.region,
            zone=env.zone,
            ssh_public_key=self._read_ssh_public_key(),
            preemptible=env.preemptible,
            boot_disk_gb=boot_disk_gb,
            logf=self.stlog.logf,
        )
        fleet = provisioner.provision_fleet(self.fleet_specs)

        # assigned only after every worker has returned
        env.jumpbox = fleet.jumpbox
        env.postgres_node = fleet.postgres
        env.ceph_nodes = fleet.ceph
        env.control_plane_nodes = fleet.control_planes

    def ensure_gateway_ip_addresses(self) -> None:
        self.env.gateway_ip = self._ensure_external_ip("gateway")
        self.env.public_gateway_ip = self._ensure_external_ip("public-gateway")

    def _ensure_external_ip(self, name: str) -> str:
        env = self.env
        address = self.client.get_address(env.project_id, env.region, name)
        if address is not None and address.address:
            return address.address

        created = ""
        try:
            created = self.client.create_address(env.project_id, env.region, name)
        except Exception as exc:
            if not is_already_exists(exc):
                raise ProvisioningError(f"failed to create address {name}: {exc}") from exc
        if created:
            return created

        address = self.client.get_address(env.project_id, env.region, name)
        if address is not None and address.address:
            return address.address
        raise ProvisioningError(f"failed to get address {name} after creation")

    # ------------------------------------------------------------------
    # node configuration
    # ------------------------------------------------------------------

    def ensure_root_login_enabled(self) -> None:
        env = self.env
        nodes = [self._jumpbox(), *env.control_plane_nodes, self._postgres(), *env.ceph_nodes]
        for node in nodes:
            self.stlog.substep(
                f"Ensuring root login enabled on {node.name}",
                lambda node=node: self._ensure_root_login(node),
            )

    def _ensure_root_login(self, node: Node) -> None:
        try:
            node.wait_ready(self.ssh_ready_timeout)
        except Exception as exc:
            raise GcpBootError(f"timed out waiting for SSH service to start on {node.name}: {exc}") from exc

        if node.has_root_login_enabled():
            return

        self._retry(node.enable_root_login, ROOT_LOGIN_RETRY, f"enable root login on {node.name}")

    def ensure_jumpbox_configured(self) -> None:
        jumpbox = self._jumpbox()
        if not jumpbox.has_accept_env_configured():
            try:
                jumpbox.configure_accept_env()
            except Exception as exc:
                raise GcpBootError(f"failed to configure AcceptEnv on jumpbox: {exc}") from exc

        if jumpbox.has_command("oms-cli"):
            return
        try:
            jumpbox.install_oms()
        except Exception as exc:
            raise GcpBootError(f"failed to install OMS on jumpbox: {exc}") from exc

    def ensure_hosts_configured(self) -> None:
        env = self.env
        for node in [*env.control_plane_nodes, self._postgres(), *env.ceph_nodes]:
            if not node.has_inotify_watches_configured():
                try:
                    node.configure_inotify_watches()
                except Exception as exc:
                    raise GcpBootError(f"failed to configure inotify watches on {node.name}: {exc}") from exc
            if not node.has_memory_map_configured():
                try:
                    node.configure_memory_map()
                except Exception as exc:
                    raise GcpBootError(f"failed to configure memory map on {node.name}: {exc}") from exc

    # ------------------------------------------------------------------
    # registries
    # ------------------------------------------------------------------

    def ensure_local_container_registry(self) -> None:
        """
        Runs a podman registry on the postgres node so image pulls stay inside
        the VPC. Every cluster node is made to trust its self-signed cert.
        """
        postgres = self._postgres()
        registry = self.env.install_config.registry
        server = f"{postgres.internal_ip}:5000"

        self.stlog.logf("Checking if local container registry is already running on postgres node")
        running = postgres.check(
            "root", "test \"$(podman ps --filter 'name=registry' --format '{{.Names}}' | wc -l)\" -eq \"1\""
        )
        if running and registry.server == server and registry.username and registry.password:
            self.stlog.logf("Local container registry already running on postgres node")
            return

        registry.server = server
        registry.username = "custom-registry"
        registry.password = short_id()

        ip = postgres.internal_ip
        commands = [
            "apt-get update",
            "apt-get install -y podman apache2-utils",
            f"htpasswd -bBc /root/registry.password {registry.username} {registry.password}",
            "openssl req -newkey rsa:4096 -nodes -sha256 -keyout /root/registry.key -x509 -days 365 "
            f"-out /root/registry.crt -subj \"/C=DE/ST=BW/L=Karlsruhe/O=Codesphere/CN={ip}\" "
            f"-addext \"subjectAltName = DNS:postgres,IP:{ip}\"",
            "podman rm -f registry || true",
            "podman run -d --restart=always --name registry --net=host "
            "--env REGISTRY_HTTP_ADDR=0.0.0.0:5000 "
            "--env REGISTRY_AUTH=htpasswd "
            "--env REGISTRY_AUTH_HTPASSWD_REALM='Registry Realm' "
            "--env REGISTRY_AUTH_HTPASSWD_PATH=/auth/registry.password "
            "-v /root/registry.password:/auth/registry.password "
            "--env REGISTRY_HTTP_TLS_CERTIFICATE=/certs/registry.crt "
            "--env REGISTRY_HTTP_TLS_KEY=/certs/registry.key "
            "-v /root/registry.crt:/certs/registry.crt "
            "-v /root/registry.key:/certs/registry.key "
            "registry:2",
            f"mkdir -p /etc/docker/certs.d/{server}",
            f"cp /root/registry.crt /etc/docker/certs.d/{server}/ca.crt",
        ]
        for cmd in commands:
            self.stlog.logf("Running command on postgres node: %s", truncate(cmd, 12))
            try:
                postgres.run_command("root", cmd)
            except Exception as exc:
                raise GcpBootError(f"failed to run command on postgres node: {exc}") from exc

        for node in [*self.env.control_plane_nodes, *self.env.ceph_nodes]:
            self.stlog.logf("Configuring node '%s' to trust local registry certificate", node.name)
            try:
                postgres.run_command(
                    "root",
                    "scp -o StrictHostKeyChecking=no /root/registry.crt "
                    f"root@{node.internal_ip}:/usr/local/share/ca-certificates/registry.crt",
                )
            except Exception as exc:
                raise GcpBootError(f"failed to copy registry certificate to node {node.internal_ip}: {exc}") from exc
            try:
                node.run_command("root", "update-ca-certificates")
                # docker is usually not installed yet
                node.run_command("root", "systemctl restart docker.service || true")
            except Exception as exc:
                raise GcpBootError(f"failed to trust registry certificate on node {node.internal_ip}: {exc}") from exc

    def ensure_github_access_configured(self) -> None:
        env = self.env
        if not env.github_pat:
            raise ConfigurationError("GitHub PAT is not set")
        registry = env.install_config.registry
        registry.server = "ghcr.io"
        registry.username = env.registry_user
        registry.password = env.github_pat
        registry.replace_images_in_bom = False
        registry.load_container_images = False

    # ------------------------------------------------------------------
    # install config
    # ------------------------------------------------------------------

    def update_install_config(self) -> None:
        env = self.env
        cfg = env.install_config
        postgres = self._postgres()
        if not env.ceph_nodes:
            raise GcpBootError("no ceph nodes have been provisioned")
        control_planes = env.control_plane_nodes
        first_cp = self._first_control_plane()

        cfg.datacenter.id = env.datacenter_id
        cfg.datacenter.city = "Karlsruhe"
        cfg.datacenter.country_code = "DE"
        cfg.secrets.base_dir = env.secrets_dir
        if env.registry_type != RegistryType.GITHUB:
            cfg.registry.replace_images_in_bom = True
            cfg.registry.load_container_images = True

        if cfg.postgres.primary is None:
            cfg.postgres.primary = PostgresPrimaryConfig(hostname=postgres.name)
        cfg.postgres.primary.ip = postgres.internal_ip

        cfg.ceph.csi_kubelet_dir = "/var/lib/k0s/kubelet"
        cfg.ceph.nodes_subnet = SUBNET_CIDR
        cfg.ceph.hosts = [
            CephHost(hostname=n.name, ip_address=n.internal_ip, is_master=(i == 0))
            for i, n in enumerate(env.ceph_nodes)
        ]
        cfg.ceph.osds = [
            {
                "specId": "default",
                "placement": {"host_pattern": "*"},
                "dataDevices": {"size": "100G:", "limit": 1},
                "dbDevices": {"size": "10G:500G", "limit": 1},
            }
        ]

        cfg.kubernetes.managed_by_codesphere = True
        cfg.kubernetes.api_server_host = first_cp.internal_ip
        cfg.kubernetes.control_planes = [K8sNode(ip_address=first_cp.internal_ip)]
        cfg.kubernetes.workers = [K8sNode(ip_address=n.internal_ip) for n in control_planes]

        cfg.cluster.monitoring = {"prometheus": {"remoteWrite": {"enabled": False, "clusterName": "GCP-test"}}}
        cfg.cluster.gateway.service_type = "LoadBalancer"
        cfg.cluster.gateway.annotations = {LB_IP_ANNOTATION: env.gateway_ip}
        cfg.cluster.public_gateway.service_type = "LoadBalancer"
        cfg.cluster.public_gateway.annotations = {LB_IP_ANNOTATION: env.public_gateway_ip}

        dns_project = env.dns_project_id or env.project_id
        cfg.cluster.certificates["override"] = {
            "issuers": {
                "letsEncryptHttp": {"enabled": True},
                "acme": {"dnsSolver": {"config": {"cloudDNS": {"project": dns_project}}}},
            }
        }

        cs = cfg.codesphere
        cs.cert_issuer = {
            "type": "acme",
            "acme": {
                "email": f"oms-testing@{env.base_domain}",
                "server": "https://acme-v02.api.letsencrypt.org/directory",
            },
        }
        cs.domain = f"cs.{env.base_domain}"
        cs.workspace_hosting_base_domain = f"ws.{env.base_domain}"
        cs.public_ip = control_planes[1].external_ip if len(control_planes) > 1 else first_cp.external_ip
        cs.custom_domains = {"cNameBaseDomain": f"ws.{env.base_domain}"}
        cs.dns_servers = ["8.8.8.8"]
        cs.deploy_config = {
            "images": {
                "ubuntu-24.04": {
                    "name": "Ubuntu 24.04",
                    "supportedUntil": "2028-05-31",
                    "flavors": {
                        "default": {
                            "image": {"bomRef": "workspace-agent-24.04"},
                            "pool": {1: 1, 2: 1, 3: 0},
                        }
                    },
                }
            }
        }
        cs.plans = {
            "hostingPlans": {
                1: {"cpuTenth": 20, "gpuParts": 0, "memoryMb": 4096, "storageMb": 20480, "tempStorageMb": 1024},
                2: {"cpuTenth": 40, "gpuParts": 0, "memoryMb": 8192, "storageMb": 40960, "tempStorageMb": 1024},
                3: {"cpuTenth": 80, "gpuParts": 0, "memoryMb": 16384, "storageMb": 40960, "tempStorageMb": 1024},
            },
            "workspacePlans": {
                1: {"name": "Standard", "hostingPlanId": 1, "maxReplicas": 3, "onDemand": True},
                2: {"name": "Big", "hostingPlanId": 2, "maxReplicas": 3, "onDemand": True},
                3: {"name": "Pro", "hostingPlanId": 3, "maxReplicas": 3, "onDemand": True},
            },
        }
        cs.git_providers = {
            "github": {
                "enabled": True,
                "url": "https://github.com",
                "api": {"baseUrl": "https://api.github.com"},
                "oauth": {
                    "issuer": "https://github.com",
                    "authorizationEndpoint": "https://github.com/login/oauth/authorize",
                    "tokenEndpoint": "https://github.com/login/oauth/access_token",
                },
            }
        }
        if env.github_app_client_id:
            cs.github_app_client_id = env.github_app_client_id
        if env.github_app_client_secret:
            cs.github_app_client_secret = env.github_app_client_secret
        cs.experiments = list(env.experiments)
        cs.features = list(env.feature_flags)
        cs.managed_services = []

        if not env.existing_config_used:
            self.config_manager.generate_secrets()

        self.config_manager.write_install_config(env.install_config_path, with_comments=True)
        self.config_manager.write_vault(env.secrets_file_path, with_comments=True)

        jumpbox = self._jumpbox()
        try:
            jumpbox.copy_file(env.install_config_path, REMOTE_CONFIG_PATH)
        except Exception as exc:
            raise GcpBootError(f"failed to copy install config to jumpbox: {exc}") from exc
        try:
            jumpbox.copy_file(env.secrets_file_path, f"{env.secrets_dir}/prod.vault.yaml")
        except Exception as exc:
            raise GcpBootError(f"failed to copy secrets file to jumpbox: {exc}") from exc

    def ensure_age_key(self) -> None:
        jumpbox = self._jumpbox()
        secrets_dir = self.env.secrets_dir
        if jumpbox.has_file(f"{secrets_dir}/age_key.txt"):
            return
        jumpbox.run_command("root", f"mkdir -p {secrets_dir}; age-keygen -o {secrets_dir}/age_key.txt")

    def encrypt_vault(self) -> None:
        jumpbox = self._jumpbox()
        secrets_dir = self.env.secrets_dir
        vault = f"{secrets_dir}/prod.vault.yaml"
        try:
            jumpbox.run_command("root", f"cp {vault}{{,.bak}}")
        except Exception as exc:
            raise GcpBootError(f"failed to back up vault on jumpbox: {exc}") from exc
        jumpbox.run_command(
            "root", f"sops --encrypt --in-place --age $(age-keygen -y {secrets_dir}/age_key.txt) {vault}"
        )

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------

    def ensure_dns_records(self) -> None:
        env = self.env
        project = env.dns_project_id or env.project_id
        self.client.ensure_dns_managed_zone(project, env.dns_zone_name, f"{env.base_domain}.", "Codesphere DNS zone")
        records = gateway_records(env.base_domain, env.gateway_ip, env.public_gateway_ip)
        self.client.ensure_dns_record_sets(project, env.dns_zone_name, records)

    # ------------------------------------------------------------------
    # k0s & install
    # ------------------------------------------------------------------

    def generate_k0s_config_script(self) -> None:
        env = self.env
        target = self._first_control_plane()
        script = render_k0s_config_script(
            project_id=env.project_id,
            gateway_ip=env.gateway_ip,
            public_gateway_ip=env.public_gateway_ip,
            control_plane_ips=[n.internal_ip for n in env.control_plane_nodes],
        )

        self.workdir.mkdir(parents=True, exist_ok=True)
        local_path = self.workdir / SCRIPT_NAME
        local_path.write_text(script)
        local_path.chmod(0o755)

        try:
            target.copy_file(str(local_path), REMOTE_SCRIPT_PATH)
        except Exception as exc:
            raise GcpBootError(f"failed to copy {SCRIPT_NAME} to {target.name}: {exc}") from exc
        target.run_command("root", f"chmod +x {REMOTE_SCRIPT_PATH}")

    def install_codesphere(self) -> None:
        env = self.env
        jumpbox = self._jumpbox()
        package = self._installer_artifact()
        skip_steps = list(env.install_skip_steps)
        if env.registry_type == RegistryType.GITHUB:
            skip_steps.append("load-container-images")
        skip_arg = f" -s {','.join(skip_steps)}" if skip_steps else ""

        try:
            jumpbox.run_command("root", f"oms-cli download package -f {package} {env.install_version}")
        except Exception as exc:
            raise GcpBootError(f"failed to download Codesphere package from jumpbox: {exc}") from exc

        install_cmd = (
            f"oms-cli install codesphere -c {REMOTE_CONFIG_PATH} -k {env.secrets_dir}/age_key.txt "
            f"-p {env.install_version}-{package}{skip_arg}"
        )
        try:
            jumpbox.run_command("root", install_cmd)
        except Exception as exc:
            raise GcpBootError(f"failed to install Codesphere from jumpbox: {exc}") from exc

    def run_k0s_config_script(self) -> None:
        self._first_control_plane().run_command("root", REMOTE_SCRIPT_PATH)
