"""
Gateway components.

- core: constants shared by every component
- connection: registry, heartbeat and room locks
- rooms: room keys and the join/leave/emit protocol
- events: event names and the notification value object
- endpoints: the /ws message loop
"""
