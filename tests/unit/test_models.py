from edgex.common.models.conditions import Conditions
from edgex.common.models.labels import Labels
from edgex.common.models.owners import Owners


def ref(uid, name=None):
    return Owners.reference("device.openyurt.io/v1alpha2", "EdgeX", name or uid, uid)


def test_owners_are_a_set_keyed_by_uid():
    owners = Owners([ref("a")])

    assert owners.add(ref("b"))
    assert not owners.add(ref("a", name="renamed"))
    assert owners.uids == ["a", "b"]
    assert all("controller" not in r for r in owners)


def test_removing_last_owner_orphans_the_child():
    owners = Owners.of({"metadata": {"ownerReferences": [ref("a")]}})

    assert not owners.remove("b")
    assert owners.remove("a")
    assert owners.orphaned
    assert owners.apply({"metadata": {}})["metadata"]["ownerReferences"] == []


def test_owners_do_not_alias_input():
    refs = [ref("a")]
    owners = Owners(refs)
    owners.add(ref("b"))
    assert len(refs) == 1


def test_generated_labels():
    labels = Labels.generate_default_labels(Labels.GENERATED_SERVICE, "edgex-operator")
    labels.include_app("edgex-redis")

    assert labels.as_dict() == {
        "www.edgexfoundry.org/generate": "Service",
        "app.kubernetes.io/part-of": "edgex",
        "app.kubernetes.io/managed-by": "edgex-operator",
        "app": "edgex-redis",
    }
    assert labels.contains(Labels.generated(Labels.GENERATED_SERVICE))
    assert not labels.contains(Labels.generated(Labels.GENERATED_CONFIG_MAP))


def test_transition_time_only_moves_on_flip():
    conditions = Conditions()
    conditions.mark_false(
        Conditions.COMPONENT_AVAILABLE,
        Conditions.COMPONENT_PROVISIONING,
        Conditions.SEVERITY_INFO,
        "0/2 components ready",
    )
    first = conditions.get(Conditions.COMPONENT_AVAILABLE)
    stamped = first["lastTransitionTime"]

    # same status, new message
    conditions = Conditions(conditions.as_list())
    conditions.mark_false(
        Conditions.COMPONENT_AVAILABLE,
        Conditions.COMPONENT_PROVISIONING,
        Conditions.SEVERITY_INFO,
        "1/2 components ready",
    )
    second = conditions.get(Conditions.COMPONENT_AVAILABLE)
    assert second["lastTransitionTime"] == stamped
    assert second["message"] == "1/2 components ready"

    conditions.mark_true(Conditions.COMPONENT_AVAILABLE)
    flipped = conditions.get(Conditions.COMPONENT_AVAILABLE)
    assert flipped["status"] == "True"
    assert "reason" not in flipped and "message" not in flipped
    assert len(conditions.as_list()) == 1


def test_summary_follows_first_false_condition():
    conditions = Conditions()
    conditions.set_summary(Conditions.CONFIGMAP_AVAILABLE, Conditions.COMPONENT_AVAILABLE)
    assert conditions.get(Conditions.READY) is None

    conditions.mark_true(Conditions.CONFIGMAP_AVAILABLE)
    conditions.mark_false(
        Conditions.COMPONENT_AVAILABLE,
        Conditions.COMPONENT_PROVISIONING_FAILED,
        Conditions.SEVERITY_WARNING,
        "boom",
    )
    conditions.set_summary(Conditions.CONFIGMAP_AVAILABLE, Conditions.COMPONENT_AVAILABLE)
    ready = conditions.get(Conditions.READY)
    assert ready["status"] == "False"
    assert ready["reason"] == Conditions.COMPONENT_PROVISIONING_FAILED
    assert ready["severity"] == Conditions.SEVERITY_WARNING
    assert ready["message"] == "boom"

    conditions.mark_true(Conditions.COMPONENT_AVAILABLE)
    conditions.set_summary(Conditions.CONFIGMAP_AVAILABLE, Conditions.COMPONENT_AVAILABLE)
    assert conditions.is_true(Conditions.READY)
