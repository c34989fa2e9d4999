"""E2E Test Suite for proxy-resync-e2e.

This directory contains End-to-End tests that launch real etcd and grpc-proxy
processes. They are marked ``e2e`` and ``slow`` and skip themselves when the
etcd binaries are not installed.

Usage:
    pytest -m e2e
    proxy-resync-e2e run --etcd-bin ./bin/etcd --etcdctl-bin ./bin/etcdctl
"""
