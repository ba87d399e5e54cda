"""maskclone - masked snapshots of Aurora clusters.

Clones a source cluster copy-on-write, runs a masking SQL script against
the clone, snapshots the result and optionally exports it to S3.  The
temporary cluster and instance are removed on every exit path.
"""

try:
    from importlib.metadata import version

    __version__ = version("maskclone")
except Exception:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]
