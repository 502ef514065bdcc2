# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Accumulation of labels and annotations for generated Kubernetes objects."""

from typing import Dict, Optional

from lightkube.models.meta_v1 import ObjectMeta

from constants import (
    APP_COMPONENT_LABEL,
    APP_INSTANCE_LABEL,
    APP_NAME_LABEL,
    MANAGED_BY,
    MANAGED_BY_LABEL,
)


class MetadataBuilder:
    """Build object metadata from layered labels and annotations.

    Layers are applied in order: defaults, inherited metadata, component
    metadata, then the explicit per-call override. Later layers win on key
    collision.
    """

    def __init__(self, name: str, namespace: str):
        self.name = name
        self.namespace = namespace
        self.labels: Dict[str, str] = {}
        self.annotations: Dict[str, str] = {}

    def _merge(self, labels: Optional[Dict[str, str]], annotations: Optional[Dict[str, str]]):
        self.labels.update(labels or {})
        self.annotations.update(annotations or {})
        return self

    def with_defaults(self, app_name: str) -> "MetadataBuilder":
        """Apply the labels every generated object carries."""
        return self._merge(
            {
                APP_NAME_LABEL: app_name,
                APP_INSTANCE_LABEL: app_name,
                MANAGED_BY_LABEL: MANAGED_BY,
            },
            None,
        )

    def with_inherited(
        self,
        labels: Optional[Dict[str, str]] = None,
        annotations: Optional[Dict[str, str]] = None,
    ) -> "MetadataBuilder":
        """Apply metadata inherited from the owning cluster."""
        return self._merge(labels, annotations)

    def with_component(
        self,
        component: str,
        labels: Optional[Dict[str, str]] = None,
        annotations: Optional[Dict[str, str]] = None,
    ) -> "MetadataBuilder":
        """Apply component specific metadata."""
        return self._merge({APP_COMPONENT_LABEL: component, **(labels or {})}, annotations)

    def with_override(
        self,
        labels: Optional[Dict[str, str]] = None,
        annotations: Optional[Dict[str, str]] = None,
    ) -> "MetadataBuilder":
        """Apply an explicit override for a single object."""
        return self._merge(labels, annotations)

    def build(self) -> ObjectMeta:
        """Return the accumulated metadata."""
        return ObjectMeta(
            name=self.name,
            namespace=self.namespace,
            labels=dict(self.labels),
            annotations=dict(self.annotations) or None,
        )
