"""Workload Reconciler.

Polls a Kubernetes workload, classifies what is wrong with it and applies a
fixed menu of remediations until it is healthy or the attempts run out:

 - shrink resource requests/limits of pods that cannot be scheduled
 - delete stuck pods so their deployment recreates them
 - rebuild and reload images that cannot be pulled
 - expose the workload's service on a node port
"""
