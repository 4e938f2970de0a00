"""ResourceAccessor backed by kubernetes_asyncio.

Custom resources go through CustomObjectsApi; Secrets through CoreV1Api.
API-type discovery reads the CustomResourceDefinition for the kind.
"""

from __future__ import annotations

from typing import Any

import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from capimove.accessor.base import ResourceAccessor
from capimove.errors import AccessorError, AlreadyExistsError, NotFoundError
from capimove.models.options import Kubeconfig
from capimove.models.resources import ObjectIdentity
from capimove.registry import KindSpec

_log = structlog.get_logger(component="accessor.kubernetes")

_MERGE_PATCH = "application/merge-patch+json"


def _translate(exc: ApiException, operation: str, what: str) -> AccessorError:
    """Map an API status to the accessor error taxonomy."""
    if exc.status == 404:
        return NotFoundError(f"{what} not found", operation=operation, status=404)
    if exc.status == 409 and operation == "create":
        return AlreadyExistsError(f"{what} already exists", operation=operation, status=409)
    return AccessorError(f"{operation} {what} failed: {exc.status} {exc.reason}", operation=operation, status=exc.status)


class KubernetesAccessor(ResourceAccessor):
    """Accessor for one cluster endpoint.

    Args:
        api_client: Configured kubernetes_asyncio ApiClient.  Owned by the
                    accessor and closed by ``close()``.
        name:       Label used in logs and metrics ("source" / "target").
    """

    def __init__(self, api_client: Any, name: str) -> None:
        self._api_client = api_client
        self._name = name
        self._custom = k8s_client.CustomObjectsApi(api_client)
        self._core = k8s_client.CoreV1Api(api_client)
        self._extensions = k8s_client.ApiextensionsV1Api(api_client)

    @classmethod
    async def from_kubeconfig(cls, kubeconfig: Kubeconfig, name: str) -> KubernetesAccessor:
        """Build an accessor with its own ApiClient from a kubeconfig file and context."""
        api_client = await k8s_config.new_client_from_config(
            config_file=kubeconfig.path or None,
            context=kubeconfig.context or None,
        )
        _log.info(
            "accessor_configured",
            accessor=name,
            kubeconfig=kubeconfig.path or "<default>",
            context=kubeconfig.context or "<current>",
        )
        return cls(api_client, name)

    @property
    def name(self) -> str:
        return self._name

    async def list(self, kind: KindSpec, namespace: str, selector: str | None) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        if selector:
            kwargs["label_selector"] = selector
        gvk = kind.gvk
        try:
            if _is_secret(kind):
                if namespace:
                    result = await self._core.list_namespaced_secret(namespace, **kwargs)
                else:
                    result = await self._core.list_secret_for_all_namespaces(**kwargs)
                items = self._api_client.sanitize_for_serialization(result).get("items", [])
            elif namespace and kind.namespaced:
                result = await self._custom.list_namespaced_custom_object(
                    gvk.group, gvk.version, namespace, kind.plural, **kwargs
                )
                items = result.get("items", [])
            else:
                result = await self._custom.list_cluster_custom_object(gvk.group, gvk.version, kind.plural, **kwargs)
                items = result.get("items", [])
        except ApiException as exc:
            raise _translate(exc, "list", kind.plural) from exc

        # List responses omit apiVersion/kind on core items.
        for item in items:
            item.setdefault("apiVersion", gvk.api_version)
            item.setdefault("kind", gvk.kind)
        return list(items)

    async def get(self, kind: KindSpec, namespace: str, name: str) -> dict[str, Any]:
        gvk = kind.gvk
        what = f"{gvk.kind} {namespace}/{name}"
        try:
            if _is_secret(kind):
                result = await self._core.read_namespaced_secret(name, namespace)
                obj = self._api_client.sanitize_for_serialization(result)
            elif kind.namespaced:
                obj = await self._custom.get_namespaced_custom_object(gvk.group, gvk.version, namespace, kind.plural, name)
            else:
                obj = await self._custom.get_cluster_custom_object(gvk.group, gvk.version, kind.plural, name)
        except ApiException as exc:
            raise _translate(exc, "get", what) from exc
        obj.setdefault("apiVersion", gvk.api_version)
        obj.setdefault("kind", gvk.kind)
        return obj

    async def create(self, kind: KindSpec, obj: dict[str, Any]) -> dict[str, Any]:
        gvk = kind.gvk
        metadata = obj.get("metadata", {})
        namespace = metadata.get("namespace", "")
        what = f"{gvk.kind} {namespace}/{metadata.get('name', '')}"
        try:
            if _is_secret(kind):
                result = await self._core.create_namespaced_secret(namespace, obj)
                return self._api_client.sanitize_for_serialization(result)
            if kind.namespaced:
                return await self._custom.create_namespaced_custom_object(
                    gvk.group, gvk.version, namespace, kind.plural, obj
                )
            return await self._custom.create_cluster_custom_object(gvk.group, gvk.version, kind.plural, obj)
        except ApiException as exc:
            raise _translate(exc, "create", what) from exc

    async def delete(self, kind: KindSpec, identity: ObjectIdentity) -> None:
        gvk = kind.gvk
        try:
            if _is_secret(kind):
                await self._core.delete_namespaced_secret(identity.name, identity.namespace)
            elif kind.namespaced:
                await self._custom.delete_namespaced_custom_object(
                    gvk.group, gvk.version, identity.namespace, kind.plural, identity.name
                )
            else:
                await self._custom.delete_cluster_custom_object(gvk.group, gvk.version, kind.plural, identity.name)
        except ApiException as exc:
            raise _translate(exc, "delete", str(identity)) from exc

    async def patch_annotations(
        self,
        kind: KindSpec,
        identity: ObjectIdentity,
        delta: dict[str, str | None],
    ) -> None:
        await self._merge_patch(kind, identity, {"metadata": {"annotations": delta}})

    async def remove_finalizers(self, kind: KindSpec, identity: ObjectIdentity) -> None:
        await self._merge_patch(kind, identity, {"metadata": {"finalizers": None}})

    async def _merge_patch(self, kind: KindSpec, identity: ObjectIdentity, body: dict[str, Any]) -> None:
        gvk = kind.gvk
        try:
            if _is_secret(kind):
                await self._core.patch_namespaced_secret(identity.name, identity.namespace, body)
            elif kind.namespaced:
                await self._custom.patch_namespaced_custom_object(
                    gvk.group,
                    gvk.version,
                    identity.namespace,
                    kind.plural,
                    identity.name,
                    body,
                    _content_type=_MERGE_PATCH,
                )
            else:
                await self._custom.patch_cluster_custom_object(
                    gvk.group, gvk.version, kind.plural, identity.name, body, _content_type=_MERGE_PATCH
                )
        except ApiException as exc:
            raise _translate(exc, "patch", str(identity)) from exc

    async def has_kind(self, kind: KindSpec) -> bool:
        gvk = kind.gvk
        if not gvk.group:
            return True
        try:
            crd = await self._extensions.read_custom_resource_definition(f"{kind.plural}.{gvk.group}")
        except ApiException as exc:
            if exc.status == 404:
                return False
            raise _translate(exc, "discover", f"{kind.plural}.{gvk.group}") from exc
        return any(version.name == gvk.version and version.served for version in crd.spec.versions)

    async def close(self) -> None:
        await self._api_client.close()


def _is_secret(kind: KindSpec) -> bool:
    return kind.gvk.group_kind == ("", "Secret")
