# eleclog

eleclog keeps a log of the electricity balance of dormitory rooms. It provides:

- Flask blueprints for rooms, balance history and usage, history import, and
  pass-through queries to the campus electricity service.
- Bearer-token authentication for the protected routes.
- An in-memory store.
- A collector that asks the campus service for each room's balance at five
  minutes past every hour.

## Installing

```
pip install .
```

To install the test tools as well:

```
pip install ".[test]"
```

## Modules

- `eleclog.models`: `Config`, the records `Room`, `ElectricityRecord` and
  `UserRoomNotification`, the abstract `Store`, and `MemoryStore`, a
  thread-safe store kept in process memory. A missing row raises
  `NotFoundError`. Other storage failures raise `StoreError`.
- `eleclog.auth`: `TokenMaker` creates and verifies signed, expiring tokens.
  Its key must be exactly 32 characters. `authenticate` checks an
  `Authorization` header value. `require_auth` is a view decorator that answers
  401 when the header is missing or invalid. `authorized_username` returns the
  user for the current request.
- `eleclog.httplog`: `install(app, dev, stack)` adds request logging to an
  application. With `dev` true, each request is logged as one coloured line;
  otherwise it is logged as structured fields. It also turns uncaught
  exceptions into empty 500 responses and logs them, with a traceback when
  `stack` is true.
- `eleclog.usage`: `compute_usage` turns ordered readings into per-interval
  kWh figures. A top-up counts as zero usage. `import_records` loads a JSON
  export into a store. It reads the timestamps as GMT+8, stores them as UTC,
  and skips timestamps that are already present.
- `eleclog.upstream`: `UpstreamClient` queries areas, buildings, floors, rooms
  and room balances. `fetch_surplus` returns a balance in yuan. Failures raise
  `UpstreamError`.
- `eleclog.collector`: `Collector.start()` runs a background thread that
  collects at minute 5 of every hour. `stop()` ends it. `run_now()` performs a
  single pass and returns the records it stored.
- `eleclog.rooms`, `eleclog.balances`, `eleclog.proxy`: each module has a
  Flask `blueprint` holding its routes.

## Routes

Open to everyone:

- `GET /rooms/<id>`, `GET /rooms?page_id=&page_size=` (page size at most 50),
  `PUT /rooms/<id>`
- `GET /electricity-balances/latest/<room_id>`
- `GET /electricity-balances/hour-range/<room_id>?start_time=&end_time=`
  takes RFC 3339 times. It returns one entry per interval with the kWh used
  and the balance in yuan at the end of that interval.

These need an `Authorization: Bearer <token>` header:

- `POST /rooms`, `DELETE /rooms/<id>`
- `POST /electricity-balances/import/<room_id>` takes a JSON file uploaded as
  the form field `file`.
- `GET /proxy/areas`, `/proxy/buildings`, `/proxy/floors`, `/proxy/rooms`,
  `/proxy/room-surplus` pass the query on to the upstream service. If the
  upstream call fails, the route answers 502.

Errors come back as `{"error": "<message>"}`.

## Assembling an application

The blueprints read their collaborators from the application's config:

```python
import secrets
from datetime import timedelta

from flask import Flask

from eleclog import balances, httplog, proxy, rooms
from eleclog.auth import TOKEN_MAKER_KEY, TokenMaker
from eleclog.models import Config, MemoryStore
from eleclog.upstream import UpstreamClient

key = secrets.token_urlsafe(24)  # 32 characters
config = Config(token_symmetric_key=key, price_per_kwh=0.5)
maker = TokenMaker(config.token_symmetric_key)

app = Flask("eleclog")
app.config[rooms.STORE_KEY] = MemoryStore()
app.config[rooms.CONFIG_KEY] = config
app.config[TOKEN_MAKER_KEY] = maker
app.config[proxy.UPSTREAM_KEY] = UpstreamClient(config.shiro_jid)
for module in (rooms, balances, proxy):
    app.register_blueprint(module.blueprint)
httplog.install(app, dev=True, stack=True)

token, payload = maker.create_token("alice", timedelta(minutes=15))
client = app.test_client()
client.post(
    "/rooms",
    json={"name": "A101", "area_id": "1", "building_code": "2",
          "floor_code": "3", "room_code": "4"},
    headers={"Authorization": f"Bearer {token}"},
)
```

## What it does not do

- The package has no command. It provides no ready-made application factory
  and no entry point that starts serving. You assemble the application as
  shown above and run it yourself.
- There are no HTTP routes for notification subscriptions. `MemoryStore` can
  store them, but nothing exposes them over HTTP or sends notifications.
- The only storage is `MemoryStore`, so all data is lost when the process
  exits.