import random

import pytest

from gcpboot.errors import FleetProvisioningError, GcpBootError
from gcpboot.fleet.provisioner import BOOT_IMAGE, ConcurrentFleetProvisioner
from gcpboot.fleet.specs import DEFAULT_FLEET, VMSpec
from gcpboot.provisioning.models import InstanceInfo

from fakes import FakeExecutor, FakeProvisioningClient

PUB = "ssh-ed25519 AAAAkey operator@laptop"


def _provisioner(client, executor=None, **kw):
    return ConcurrentFleetProvisioner(
        client,
        executor or FakeExecutor(),
        project_id="demo-1a2b3c4d",
        region="europe-west4",
        zone="europe-west4-a",
        ssh_public_key=PUB + "\n",
        **kw,
    )


def test_fleet_is_sorted_regardless_of_completion_order():
    client = FakeProvisioningClient()
    rng = random.Random(7)
    delays = {spec.name: rng.uniform(0, 0.05) for spec in DEFAULT_FLEET}
    client.instance_latency = lambda name: delays[name]

    fleet = _provisioner(client).provision_fleet(DEFAULT_FLEET)

    assert fleet.jumpbox.name == "jumpbox" and fleet.jumpbox.jumpbox is None
    assert fleet.postgres.jumpbox is fleet.jumpbox
    assert [n.name for n in fleet.ceph] == ["ceph-1", "ceph-2", "ceph-3", "ceph-4"]
    assert [n.name for n in fleet.control_planes] == ["k0s-1", "k0s-2", "k0s-3"]
    assert all(n.jumpbox is fleet.jumpbox for n in fleet.ceph + fleet.control_planes)
    assert fleet.jumpbox.external_ip == client.instances["jumpbox"].external_ip
    assert len(client.instances) == len(DEFAULT_FLEET)


def test_existing_instances_are_reused():
    client = FakeProvisioningClient()
    _provisioner(client).provision_fleet(DEFAULT_FLEET)
    before = dict(client.instances)

    fleet = _provisioner(client).provision_fleet(DEFAULT_FLEET)

    assert client.instances == before
    assert fleet.postgres.internal_ip == before["postgres"].internal_ip


def test_failures_are_aggregated_after_all_workers_finish():
    class Flaky(FakeProvisioningClient):
        def create_instance(self, project_id, zone, request):
            if request.name in ("ceph-2", "k0s-3"):
                raise RuntimeError("quota exceeded")
            super().create_instance(project_id, zone, request)

    client = Flaky()
    with pytest.raises(FleetProvisioningError) as ei:
        _provisioner(client).provision_fleet(DEFAULT_FLEET)

    assert len(ei.value.errors) == 2
    assert "2 instance task(s) failed" in str(ei.value)
    messages = sorted(str(e) for e in ei.value.errors)
    assert messages == [
        "failed to create instance ceph-2: quota exceeded",
        "failed to create instance k0s-3: quota exceeded",
    ]
    # the other workers still ran to completion
    assert len(client.instances) == len(DEFAULT_FLEET) - 2


def test_missing_ips_fail_the_worker():
    class NoExternal(FakeProvisioningClient):
        def get_instance(self, project_id, zone, name):
            info = super().get_instance(project_id, zone, name)
            if name == "jumpbox":
                return InstanceInfo(name=name, internal_ip=info.internal_ip)
            return info

    with pytest.raises(FleetProvisioningError, match="instance jumpbox has no external IP"):
        _provisioner(NoExternal()).provision_fleet(DEFAULT_FLEET)


def test_fleet_without_jumpbox_is_rejected():
    specs = [s for s in DEFAULT_FLEET if s.name != "jumpbox"]

    with pytest.raises(GcpBootError, match="exactly one jumpbox"):
        _provisioner(FakeProvisioningClient()).provision_fleet(specs)


def test_build_request():
    prov = _provisioner(FakeProvisioningClient(), preemptible=True, boot_disk_gb=50)
    spec = VMSpec("ceph-1", "e2-standard-8", ("ceph",), additional_disks_gb=(20, 200))

    req = prov.build_request(spec)

    assert req.machine_type == "zones/europe-west4-a/machineTypes/e2-standard-8"
    assert [d.size_gb for d in req.disks] == [50, 20, 200]
    assert req.disks[0].boot and req.disks[0].source_image == BOOT_IMAGE
    assert not req.disks[1].boot
    assert req.network == "projects/demo-1a2b3c4d/global/networks/demo-1a2b3c4d-vpc"
    assert req.subnetwork == "projects/demo-1a2b3c4d/regions/europe-west4/subnetworks/demo-1a2b3c4d-europe-west4-subnet"
    assert req.service_account_email == "cloud-controller@demo-1a2b3c4d.iam.gserviceaccount.com"
    assert req.metadata["ssh-keys"] == f"root:{PUB} root\nubuntu:{PUB} ubuntu"
    assert req.preemptible is True
    assert req.external_ip is False
