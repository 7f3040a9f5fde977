"""Kubernetes operator for CassandraDatacenter resources."""

__version__ = "0.1.0"
