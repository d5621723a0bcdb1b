from gcpboot.provisioning.iam import add_role_binding, remove_role_binding, service_account_member
from gcpboot.provisioning.models import Binding, Policy

ME = service_account_member("cloud-controller", "p")
OTHER = "user:admin@example.com"


def test_member_format():
    assert ME == "serviceAccount:cloud-controller@p.iam.gserviceaccount.com"


def test_add_creates_missing_binding():
    policy = Policy(bindings=[Binding("roles/viewer", [OTHER])])

    assert add_role_binding(policy, ME, ["roles/compute.admin"]) is True
    assert policy.bindings[1] == Binding("roles/compute.admin", [ME])


def test_add_unions_into_existing_binding():
    policy = Policy(bindings=[Binding("roles/compute.admin", [OTHER])])

    assert add_role_binding(policy, ME, ["roles/compute.admin"]) is True
    assert policy.bindings == [Binding("roles/compute.admin", [OTHER, ME])]


def test_add_is_a_noop_when_present():
    policy = Policy(bindings=[Binding("roles/compute.admin", [ME])])

    assert add_role_binding(policy, ME, ["roles/compute.admin"]) is False


def test_remove_keeps_other_members():
    policy = Policy(bindings=[Binding("roles/dns.admin", [OTHER, ME])])

    assert remove_role_binding(policy, ME, ["roles/dns.admin"]) is True
    assert policy.bindings == [Binding("roles/dns.admin", [OTHER])]


def test_remove_drops_empty_binding():
    policy = Policy(bindings=[Binding("roles/dns.admin", [ME]), Binding("roles/viewer", [ME])])

    assert remove_role_binding(policy, ME, ["roles/dns.admin"]) is True
    assert policy.bindings == [Binding("roles/viewer", [ME])]


def test_remove_absent_member():
    policy = Policy(bindings=[Binding("roles/dns.admin", [OTHER])])

    assert remove_role_binding(policy, ME, ["roles/dns.admin"]) is False
