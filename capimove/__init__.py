"""capimove: relocate Cluster API object graphs between management clusters."""

__version__ = "0.1.0"
