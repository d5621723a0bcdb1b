import base64
import copy
import threading
import time

from gcpboot.errors import AlreadyExistsError, GcpBootError, NotFoundError, ProvisioningError, RemoteCommandError
from gcpboot.provisioning.client import MANAGED_LABEL, ProvisioningClient
from gcpboot.provisioning.iam import service_account_email
from gcpboot.provisioning.models import (
    Address,
    BillingInfo,
    InstanceInfo,
    ManagedZone,
    Policy,
    Project,
    Repository,
)
from gcpboot.remote.executor import RemoteExecutor


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


# ----------------- Fake provisioning backend -----------------

class FakeProvisioningClient(ProvisioningClient):
    """
    In-memory cloud. Every create of something that already exists raises
    AlreadyExistsError, so a second run that re-creates anything shows up
    either as an error or as an extra entry in `creates`.
    """

    def __init__(self):
        self.projects = {}
        self.billing = {}
        self.enabled_apis = {}
        self.repos = {}
        self.service_accounts = set()
        self.sa_keys = []
        self.key_failures = 0
        self.project_policies = {}
        self.sa_policies = {}
        self.vpcs = set()
        self.firewall_rules = {}
        self.instances = {}
        self.instance_requests = {}
        self.instance_latency = None
        self.addresses = {}
        self.zones = {}
        self.records = {}
        self.dns_changes = []
        self.creates = []
        self.policy_writes = []
        self.deleted_projects = []
        self._lock = threading.Lock()

    def _created(self, kind, name):
        self.creates.append((kind, name))

    # projects
    def search_projects(self, parent, display_name):
        return [
            p for p in self.projects.values()
            if p.display_name.startswith(display_name) and (not parent or p.parent == parent)
        ]

    def get_project(self, project_id):
        if project_id not in self.projects:
            raise NotFoundError(f"project {project_id} not found")
        return self.projects[project_id]

    def create_project(self, parent, project_id, display_name):
        if project_id in self.projects:
            raise AlreadyExistsError(f"project {project_id} already exists")
        self.projects[project_id] = Project(
            project_id=project_id,
            display_name=display_name,
            name=f"projects/{len(self.projects) + 1000}",
            parent=parent,
            labels={MANAGED_LABEL: "true"},
        )
        self._created("project", project_id)
        return project_id

    def delete_project(self, project_id):
        self.get_project(project_id)
        del self.projects[project_id]
        self.deleted_projects.append(project_id)

    # billing
    def get_billing_info(self, project_id):
        return self.billing.get(project_id, BillingInfo(billing_enabled=False))

    def enable_billing(self, project_id, billing_account):
        self.billing[project_id] = BillingInfo(billing_enabled=True, billing_account_name=billing_account)
        self._created("billing", project_id)

    # APIs
    def enable_api(self, project_id, api):
        with self._lock:
            self.enabled_apis.setdefault(project_id, set()).add(api)

    # artifact registry
    def get_artifact_registry(self, project_id, region, repo_name):
        return self.repos.get((project_id, region, repo_name))

    def create_artifact_registry(self, project_id, region, repo_name):
        key = (project_id, region, repo_name)
        if key in self.repos:
            raise AlreadyExistsError(f"repository {repo_name} already exists")
        repo = Repository(name=repo_name, registry_uri=f"{region}-docker.pkg.dev/{project_id}/{repo_name}")
        self.repos[key] = repo
        self._created("repository", repo_name)
        return repo

    # service accounts & IAM
    def create_service_account(self, project_id, name, display_name):
        email = service_account_email(name, project_id)
        if email in self.service_accounts:
            return email, False
        self.service_accounts.add(email)
        self._created("service_account", email)
        return email, True

    def create_service_account_key(self, project_id, sa_email):
        if self.key_failures > 0:
            self.key_failures -= 1
            raise ProvisioningError(f"service account {sa_email} does not exist yet")
        key = base64.b64encode(f"key-{len(self.sa_keys) + 1}".encode()).decode()
        self.sa_keys.append(key)
        return key

    def get_project_iam_policy(self, project_id):
        return copy.deepcopy(self.project_policies.get(project_id, Policy()))

    def set_project_iam_policy(self, project_id, policy):
        self.project_policies[project_id] = copy.deepcopy(policy)
        self.policy_writes.append(project_id)

    def get_service_account_iam_policy(self, resource):
        return copy.deepcopy(self.sa_policies.get(resource, Policy()))

    def set_service_account_iam_policy(self, resource, policy):
        self.sa_policies[resource] = copy.deepcopy(policy)
        self.policy_writes.append(resource)

    # network
    def create_vpc(self, project_id, region, network, subnet, router, nat):
        if (project_id, network) in self.vpcs:
            return
        self.vpcs.add((project_id, network))
        self._created("vpc", network)

    def create_firewall_rule(self, project_id, rule):
        if (project_id, rule.name) in self.firewall_rules:
            raise AlreadyExistsError(f"firewall rule {rule.name} already exists")
        self.firewall_rules[(project_id, rule.name)] = rule
        self._created("firewall", rule.name)

    def create_instance(self, project_id, zone, request):
        if self.instance_latency:
            time.sleep(self.instance_latency(request.name))
        with self._lock:
            if request.name in self.instances:
                raise AlreadyExistsError(f"instance {request.name} already exists")
            n = len(self.instances) + 2
            self.instances[request.name] = InstanceInfo(
                name=request.name,
                internal_ip=f"10.10.0.{n}",
                external_ip=f"34.90.0.{n}" if request.external_ip else "",
            )
            self.instance_requests[request.name] = request
            self._created("instance", request.name)

    def get_instance(self, project_id, zone, name):
        with self._lock:
            if name not in self.instances:
                raise NotFoundError(f"instance {name} not found")
            return self.instances[name]

    def create_address(self, project_id, region, name):
        if name in self.addresses:
            raise AlreadyExistsError(f"address {name} already exists")
        ip = f"35.204.0.{len(self.addresses) + 10}"
        self.addresses[name] = Address(name=name, address=ip)
        self._created("address", name)
        return ip

    def get_address(self, project_id, region, name):
        return self.addresses.get(name)

    # DNS
    def get_managed_zone(self, project_id, zone_name):
        return self.zones.get((project_id, zone_name))

    def create_managed_zone(self, project_id, zone):
        key = (project_id, zone.name)
        if key in self.zones:
            raise AlreadyExistsError(f"zone {zone.name} already exists")
        self.zones[key] = ManagedZone(zone.name, zone.dns_name, zone.description)
        self._created("zone", zone.name)

    def get_record_set(self, project_id, zone_name, name, rtype):
        return self.records.get((project_id, zone_name, name, rtype))

    def change_record_sets(self, project_id, zone_name, *, additions=(), deletions=()):
        additions, deletions = list(additions), list(deletions)
        self.dns_changes.append((project_id, zone_name, additions, deletions))
        for rec in deletions:
            if self.records.pop((project_id, zone_name, rec.name, rec.type), None) is None:
                raise ProvisioningError(f"record {rec.name} not found")
        for rec in additions:
            key = (project_id, zone_name, rec.name, rec.type)
            if key in self.records:
                raise AlreadyExistsError(f"record {rec.name} already exists")
            self.records[key] = rec


# ----------------- Fake remote executor -----------------

class FakeExecutor(RemoteExecutor):
    """
    Records (jumpbox_ip, target_ip, user, command). `fail(target_ip, command)`
    decides which commands exit non-zero.
    """

    sleep = staticmethod(lambda _s: None)

    def __init__(self, fail=None, unreachable=()):
        self.commands = []
        self.copies = []
        self.fail = fail or (lambda target_ip, command: False)
        self.unreachable = set(unreachable)
        self._lock = threading.Lock()

    def run_command(self, jumpbox_ip, target_ip, user, command):
        with self._lock:
            self.commands.append((jumpbox_ip, target_ip, user, command))
        if self.fail(target_ip, command):
            raise RemoteCommandError(target_ip, command, 1, "simulated failure")

    def copy_file(self, jumpbox_ip, target_ip, user, local_path, remote_path):
        with self._lock:
            self.copies.append((jumpbox_ip, target_ip, user, local_path, remote_path))

    def check_connection(self, jumpbox_ip, target_ip, user):
        if target_ip in self.unreachable:
            raise GcpBootError(f"connection to {target_ip} refused")

    def commands_on(self, target_ip):
        return [c[3] for c in self.commands if c[1] == target_ip]
