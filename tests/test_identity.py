from __future__ import annotations

from config import ControllerConfig
from identity import DYNAMIC, STATIC, dynamic_sources, managed_refs_for_source, resolve

from conftest import svc

CFG = ControllerConfig()

ENABLED = {
    "endpoint-copier-operator/enabled": "true",
    "endpoint-copier-operator/default-endpoint-name": "kube-apiserver",
    "endpoint-copier-operator/default-endpoint-namespace": "kube-system",
}


def test_enabled_annotation_overrides_static_config() -> None:
    ident = resolve(svc("monitoring", "apiserver-alias", annotations=ENABLED), CFG)
    assert ident.mode == DYNAMIC
    assert ident.managed == ("monitoring", "apiserver-alias")
    assert ident.source == ("kube-system", "kube-apiserver")


def test_without_annotation_uses_static_pair() -> None:
    ident = resolve(svc("monitoring", "apiserver-alias"), CFG)
    assert ident.mode == STATIC
    assert ident.source == ("default", "kubernetes")
    assert ident.managed == ("default", "kubernetes-vip")


def test_enabled_false_is_static() -> None:
    ann = dict(ENABLED, **{"endpoint-copier-operator/enabled": "false"})
    assert resolve(svc("monitoring", "apiserver-alias", annotations=ann), CFG).mode == STATIC


def test_missing_trigger_is_static() -> None:
    assert resolve(None, CFG).managed == CFG.managed_ref


def test_missing_source_annotations_resolve_to_empty_names() -> None:
    ident = resolve(svc("monitoring", "alias", annotations={"endpoint-copier-operator/enabled": "true"}), CFG)
    assert ident.mode == DYNAMIC
    assert ident.source == ("", "")


def test_managed_refs_for_static_source_include_dynamic_followers() -> None:
    follower = svc("monitoring", "alias", annotations={
        "endpoint-copier-operator/enabled": "true",
        "endpoint-copier-operator/default-endpoint-name": "kubernetes",
        "endpoint-copier-operator/default-endpoint-namespace": "default",
    })
    other = svc("monitoring", "other", annotations=ENABLED)
    refs = managed_refs_for_source(("default", "kubernetes"), [follower, other, svc("x", "plain")], CFG)
    assert refs == [("default", "kubernetes-vip"), ("monitoring", "alias")]


def test_dynamic_sources_skip_incomplete_annotations() -> None:
    partial = svc("a", "b", annotations={"endpoint-copier-operator/enabled": "true"})
    assert dynamic_sources([svc("m", "n", annotations=ENABLED), partial]) == {("kube-system", "kube-apiserver")}
