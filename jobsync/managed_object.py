"""
Helper object to represent a raw kubernetes object delivered by a watch
"""
# Standard
import uuid


class ManagedObject:
    """Basic struct to represent a kubernetes object seen by the controller"""

    def __init__(self, definition: dict):
        self.kind = definition.get("kind")
        self.metadata = definition.get("metadata", {}) or {}
        self.name = self.metadata.get("name")
        self.namespace = self.metadata.get("namespace")
        self.uid = self.metadata.get("uid", str(uuid.uuid4()))
        self.resource_version = self.metadata.get("resourceVersion")
        self.api_version = definition.get("apiVersion")
        self.definition = definition

        assert self.kind is not None, "No kind found"
        assert self.name is not None, "No name found"

    def get(self, *args, **kwargs):
        """Pass get calls to the objects definition"""
        return self.definition.get(*args, **kwargs)

    def __str__(self):
        return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        """Hash on the cluster uid only so that successive versions of the
        same resource map to the same key
        """
        return hash(self.uid)

    def __eq__(self, other):
        return hash(self) == hash(other)
