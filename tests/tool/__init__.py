"""Test helpers for addon-deploy tools."""

import pathlib

STATE = """\
---
apiVersion: cluster.open-cluster-management.io/v1
kind: ManagedCluster
metadata:
  name: cluster1
---
apiVersion: addon.open-cluster-management.io/v1alpha1
kind: ManagedClusterAddOn
metadata:
  name: foo
  namespace: cluster1
status:
  conditions:
  - type: RegistrationApplied
    status: "True"
    reason: Registered
    lastTransitionTime: "2024-01-01T00:00:00Z"
"""

MANIFESTS = """\
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: foo-config
  namespace: default
data:
  key: value
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: foo-agent
  namespace: default
spec:
  replicas: 1
"""


def write_inputs(tmp_path: pathlib.Path) -> tuple[pathlib.Path, pathlib.Path]:
    """Write the cluster state and the foo addon manifests to files."""
    state = tmp_path / "state.yaml"
    state.write_text(STATE)
    manifests = tmp_path / "foo.yaml"
    manifests.write_text(MANIFESTS)
    return state, manifests
