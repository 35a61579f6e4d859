"""Branch queue management core.

Scheduling and prediction logic for multi-branch service queues:
- token booking with counter and waiting-area seat allocation
- priority-aware queue positions
- wait-time estimation (weighted moving average of past service times)
- crowd-density classification
- a background no-show sweeper

The core talks to a document store through a narrow adapter (`store.py`) and
emits branch events through a notifier hook (`notifier.py`). An MQTT front end
(`server.py`, `kiosk.py`) exposes the service over request/response topics.
"""
