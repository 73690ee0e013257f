from __future__ import annotations

from cleanup import collect, owned_slices
from sync import EndpointSliceSync, EndpointsSync, slice_name

from conftest import eps, eps_slice, svc

OURS = {"endpointslice.kubernetes.io/managed-by": "endpoint-copier-operator"}
PORTS = [{"name": "https", "port": 6443, "protocol": "TCP"}]


def test_endpoints_sync_replaces_ports_and_labels(cluster) -> None:
    source = eps("default", "kubernetes", ["10.0.0.1", "10.0.0.2"], ports=[{"name": "https", "port": 443}])
    managed = cluster.add(eps("default", "kubernetes-vip", [], labels={"team": "infra"}))
    managed["metadata"]["resourceVersion"] = "42"

    body = EndpointsSync(cluster).sync(source, managed, [{"port": 6443, "protocol": "TCP"}])

    assert cluster.writes == [("replace", "default", "kubernetes-vip")]
    assert "resourceVersion" not in body["metadata"]
    assert body["metadata"]["labels"] == {"team": "infra", **OURS}
    assert body["subsets"] == [
        {"addresses": [{"ip": "10.0.0.1"}, {"ip": "10.0.0.2"}], "ports": [{"port": 6443, "protocol": "TCP"}]}
    ]
    # source untouched
    assert source["subsets"][0]["ports"] == [{"name": "https", "port": 443}]


def test_endpoints_sync_dry_run_writes_nothing(cluster) -> None:
    source = eps("default", "kubernetes", ["10.0.0.1"])
    managed = eps("default", "kubernetes-vip", [])
    EndpointsSync(cluster).sync(source, managed, PORTS, dry_run=True)
    assert cluster.writes == []


def test_slice_name_is_stable_and_bounded() -> None:
    a = slice_name("kubernetes-vip", "default", "kubernetes")
    assert a == slice_name("kubernetes-vip", "default", "kubernetes")
    assert a != slice_name("kubernetes-vip", "default", "kubernetes-2")
    assert a.startswith("kubernetes-vip-")
    assert len(slice_name("x" * 100, "ns", "s")) <= 63


def test_desired_slice_labels_and_owner() -> None:
    service = svc("default", "kubernetes-vip", uid="abc-123")
    source = eps_slice("default", "kubernetes", "kubernetes", ["10.0.0.1"])
    body = EndpointSliceSync.desired_slice(service, source, PORTS)
    labels = body["metadata"]["labels"]
    assert labels["kubernetes.io/service-name"] == "kubernetes-vip"
    assert labels["endpointslice.kubernetes.io/managed-by"] == "endpoint-copier-operator"
    assert labels["endpoint-copier-operator/source-slice"] == "kubernetes"
    assert body["metadata"]["ownerReferences"][0]["uid"] == "abc-123"
    assert body["endpoints"] == source["endpoints"]
    assert body["endpoints"] is not source["endpoints"]
    assert body["ports"] == PORTS


def test_slice_sync_skips_unchanged(cluster) -> None:
    service = svc("default", "kubernetes-vip")
    sources = [eps_slice("default", "kubernetes", "kubernetes", ["10.0.0.1"])]
    engine = EndpointSliceSync(cluster)

    first = engine.sync(service, sources, PORTS)
    assert len(first.applied) == 1

    existing = owned_slices(cluster, "default", "kubernetes-vip")
    second = engine.sync(service, sources, PORTS, existing=existing)
    assert second.applied == []
    assert second.unchanged == first.applied
    assert len([w for w in cluster.writes if w[0] == "apply"]) == 1


def test_slice_sync_continues_after_failure(cluster) -> None:
    service = svc("default", "kubernetes-vip")
    sources = [
        eps_slice("default", "kubernetes-a", "kubernetes", ["10.0.0.1"]),
        eps_slice("default", "kubernetes-b", "kubernetes", ["10.0.0.2"]),
        eps_slice("default", "kubernetes-c", "kubernetes", ["10.0.0.3"]),
    ]
    broken = slice_name("kubernetes-vip", "default", "kubernetes-b")
    cluster.fail_apply.add(broken)

    report = EndpointSliceSync(cluster).sync(service, sources, PORTS)

    assert report.failed == [broken]
    assert len(report.applied) == 2
    assert len(report.desired_names) == 3
    assert {b["metadata"]["name"] for b in report.bodies} == set(report.desired_names)


def test_collect_only_deletes_owned_slices(cluster) -> None:
    cluster.add(eps_slice("default", "vip-ours-1", "kubernetes-vip", [], labels=OURS))
    cluster.add(eps_slice("default", "vip-ours-2", "kubernetes-vip", [], labels=OURS))
    cluster.add(eps_slice("default", "vip-foreign", "kubernetes-vip", [], labels={"endpointslice.kubernetes.io/managed-by": "someone-else"}))
    cluster.add(eps_slice("default", "other-ours", "other", [], labels=OURS))

    report = collect(cluster, "default", "kubernetes-vip")

    assert sorted(report.deleted) == ["vip-ours-1", "vip-ours-2"]
    assert ("default", "vip-foreign") in cluster.slices
    assert ("default", "other-ours") in cluster.slices


def test_collect_tolerates_missing_and_failing_deletes(cluster) -> None:
    gone = eps_slice("default", "vip-gone", "kubernetes-vip", [], labels=OURS)
    cluster.add(eps_slice("default", "vip-bad", "kubernetes-vip", [], labels=OURS))
    cluster.add(eps_slice("default", "vip-ok", "kubernetes-vip", [], labels=OURS))
    cluster.fail_delete.add("vip-bad")

    slices = owned_slices(cluster, "default", "kubernetes-vip") + [gone]
    report = collect(cluster, "default", "kubernetes-vip", slices=slices)

    assert report.failed == ["vip-bad"]
    assert report.deleted == ["vip-ok"]
    assert report.missing == ["vip-gone"]


def test_collect_keeps_named_slices(cluster) -> None:
    cluster.add(eps_slice("default", "vip-a", "kubernetes-vip", [], labels=OURS))
    cluster.add(eps_slice("default", "vip-b", "kubernetes-vip", [], labels=OURS))
    report = collect(cluster, "default", "kubernetes-vip", keep=["vip-b"])
    assert report.deleted == ["vip-a"]
    assert ("default", "vip-b") in cluster.slices
