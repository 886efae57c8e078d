"""Delete-by-query orchestrator.

Launches an asynchronous delete-by-query task against an Elasticsearch
compatible store, supervises it until it finishes without failures and
relaunches it after a cooldown whenever it does not. An interrupted run
cancels the in-flight remote task before exiting.
"""

__version__ = "0.1.0"
