# ticketdesk

This package holds the building blocks of an event ticket reservation service:

- **Storage.** `ticketdesk.database`, `ticketdesk.event_repository`,
  `ticketdesk.seat_repository` and `ticketdesk.reservation_repository` are
  SQLAlchemy repositories for events, seats and reservations.
- **Coordination.** `ticketdesk.distributed_lock` is a Redis lock that only its
  owner can release or extend. It also has a retrying acquire.
- **Caching.** `ticketdesk.seat_cache` is a Redis cache of the number of
  available seats for each event.
- **Observability.** `ticketdesk.logger` is a process-wide logger.
  `ticketdesk.metrics` is a small in-process registry of counters, gauges and
  histograms grouped by label values.
- **Housekeeping.** `ticketdesk.worker` is a background loop that periodically
  asks a service to cancel expired reservations.

## Installation

```
pip install ticketdesk
```

SQLite works with no extra installation. To use PostgreSQL or another database
server, install a SQLAlchemy driver for it yourself. This package does not
install one.

## Redis: connection, locks and cache

```python
from ticketdesk.redis_client import RedisConfig, new_client
from ticketdesk.distributed_lock import LockManager, LockNotAcquiredError
from ticketdesk.seat_cache import SeatCache, CacheMissError

client = new_client(RedisConfig(host="localhost", port="6379"))
```

`new_client` sends a PING to check the connection. If the server cannot be
reached, it raises `RedisConnectionError`.

### Distributed locks

```python
locks = LockManager(client)

with locks.acquire_lock("event:42", ttl=5.0) as lock:
    lock.extend(10.0)
    ...  # work while holding the lock
```

- **`acquire_lock(key, ttl)`** sets `lock:<key>` to a random owner value for
  `ttl` seconds, but only if that key does not exist yet. If the lock is already
  held, it raises `LockNotAcquiredError`.
- **`acquire_lock_with_retry(key, ttl, max_retries, retry_delay, cancel=None)`**
  makes up to `max_retries` attempts and waits `retry_delay` seconds between
  them. You can pass a `threading.Event` as `cancel`. If that event is set while
  the call is waiting, it raises `LockError`.
- **`DistributedLock.release()`** and **`DistributedLock.extend(ttl)`** first
  check that the lock still belongs to this owner. Both checks run atomically in
  a Lua script. If the lock no longer belongs to this owner, they raise
  `LockNotOwnedError`.
- **Leaving the `with` block** releases the lock. If the lock was no longer
  owned at that point, the error is ignored.

All lock errors derive from `LockError`.

### Seat count cache

```python
cache = SeatCache(client)
cache.set_available_count("42", 100, ttl=30.0)   # key "seats:available:42"
try:
    print(cache.get_available_count("42"))
except CacheMissError:
    ...
cache.invalidate("42")
```

A `ttl` of zero or less stores the value with no expiry. Redis failures raise
`CacheError`. A missing key raises `CacheMissError`, which is a subclass of
`CacheError`.

## Database

```python
from ticketdesk.database import TxManager, metadata, new_connection, run_migrations
from ticketdesk.seat_repository import Seat, SeatRepository

engine = new_connection("sqlite:///tickets.db")
metadata.create_all(engine)          # or: run_migrations(engine, "migrations")

seats = SeatRepository(engine)
seats.create_bulk([Seat(event_id=event_id, seat_number=f"A{n}", price=15000) for n in range(1, 6)])

with TxManager(engine).begin() as tx:
    seats.reserve_seats(tx, [s.id for s in seats.get_available_by_event_id(event_id)[:1]], "res-1")
```

### Connections and transactions

- **`new_connection(dsn)`** creates an engine and pings it. For server
  databases it uses a pool of 5 connections with 20 overflow connections. Any
  failure raises `DatabaseError`.
- **`ping(engine)`** runs `SELECT 1`.
- **`TxManager(engine).begin()`** returns a `Transaction`. You finish it with
  `commit()` or `rollback()`. Finishing it twice raises `DatabaseError`.
- **Using a `Transaction` as a context manager** commits it on a clean exit and
  rolls it back on an exception.
- **`unwrap_tx(tx)`** returns the connection behind a `Transaction`, or `None`
  for any other object. When a repository method that writes inside a
  transaction is given something that is not a `Transaction`, it raises
  `DatabaseError("invalid transaction")`.

### Schema and migrations

The tables `events`, `seats`, `reservations` and `reservation_seats` are defined
in `ticketdesk.database.metadata`.

`run_migrations(engine, migrations_path)` works like this:

- **Which files it applies.** It applies every file named
  `<version>_<name>.up.sql` whose version is newer than the version recorded in
  the `schema_migrations` table.
- **Order and marking.** It applies the files in version order. Each version is
  marked dirty while it runs.
- **Return value.** It returns the list of versions it applied. A database that
  is already up to date gives `[]`.
- **Errors.** It raises `MigrationError` in each of these cases:
  - the directory is missing;
  - two files have the same version;
  - the database was left dirty;
  - a script fails.

No migration files come with the package.

### Repositories

- **`EventRepository`** has `create`, `get_by_id`, `list(limit, offset)`,
  `update` and `delete`.
  - `list` returns events with the latest start first.
  - `update` uses optimistic locking. It succeeds only when the stored version
    equals `event.version`, and then increments `event.version`. It raises
    `EventNotFoundError` when no event has that id and version.
- **`SeatRepository`** has `create`, `create_bulk`, `get_by_id`,
  `get_by_event_id`, `get_available_by_event_id`,
  `count_available_by_event_id`, `reserve_seats`, `confirm_seats` and
  `release_seats`.
  - `create_bulk` inserts in batches of 1000.
  - Lists are ordered by seat number.
  - A seat's status moves through `SeatStatus.AVAILABLE → RESERVED → CONFIRMED`.
  - `reserve_seats` raises `SeatAlreadyReservedError` unless every seat was
    available.
  - `confirm_seats` raises `SeatNotReservedError` unless every seat was
    reserved.
  - `release_seats` makes the seats available again, whatever their status.
- **`ReservationRepository`** has `create(tx, reservation)`, `get_by_id`,
  `get_by_idempotency_key`, `get_by_user_id(user_id, limit, offset)`,
  `update(tx, reservation)` and `get_expired_pending(expire_after)`.
  - `create` also stores the reservation's seat links.
  - `create` raises `IdempotencyKeyAlreadyExistsError` when the key is already
    used.
  - `get_by_user_id` returns reservations with the newest first.
  - `get_expired_pending` returns `PENDING` reservations created more than
    `expire_after` ago. You can give `expire_after` in seconds or as a
    `timedelta`.

When a create method succeeds, it sets the `id` of the entity you passed in to
a new UUID.

## Metrics

```python
from ticketdesk.metrics import Registry, new_with_registry

registry = Registry()
m = new_with_registry(registry)
m.reservations_total.with_label_values("success").inc()
m.distributed_lock_duration.with_label_values("acquire", "success").observe(0.015)
for family in registry.gather():
    print(family.name, family.type, [s.labels for s in family.metrics])
```

### The `Metrics` object

`Metrics` groups the following metrics:

| Attribute | Metric name | Labels |
|---|---|---|
| `http_requests_total` | `http_requests_total` | `method`, `path`, `status_code` |
| `http_request_duration` | `http_request_duration_seconds` | `method`, `path` |
| `reservations_total` | `reservations_total` | `status` |
| `distributed_lock_duration` | `distributed_lock_duration_seconds` | `operation`, `status` |
| `active_reservations` | `active_reservations` | `status` |

`http_requests_total` and `reservations_total` are counters. The two duration
metrics are histograms. `active_reservations` is a gauge.

### Registries

- **`Registry.gather()`** returns one `MetricFamily` for each metric that has
  at least one labelled series. The families are sorted by name.
- **Duplicate names.** Registering the same name twice raises `ValueError`.
- **Passing the wrong number of label values** to `with_label_values` also
  raises `ValueError`.
- **The default registry.** `new()` registers the metrics in
  `DEFAULT_REGISTRY`.
- **The default `Metrics` instance.** `init()` creates it and `get()` returns
  it. `get()` returns `None` until `init()` has been called.

## Logging

- **`new_logger(env)`** builds a logger that writes to stderr.
  - With `"production"` it writes JSON lines that have a `timestamp` field in
    ISO-8601 form. Its default level is INFO.
  - With any other value it writes tab-separated lines. Its default level is
    DEBUG.
  - The `LOG_LEVEL` environment variable overrides the level when it holds one
    of `debug`, `info`, `warn`, `error`, `dpanic`, `panic` or `fatal`. Other
    values are ignored.
- **The process-wide logger** starts as a development logger. `get()` returns
  it and `set_logger(logger)` replaces it.
- **Logging functions.** `info`, `warn`, `error` and `debug` take a message and
  keyword fields. `fatal` logs the message, flushes and exits the process.
- **`with_fields(**fields)`** returns an adapter that adds the given fields to
  every record.
- **`sync()`** flushes the handlers.

## Expired reservation cleanup

```python
import threading
from ticketdesk.worker import ExpiredReservationCleaner

cleaner = ExpiredReservationCleaner(reservation_service, interval=60.0, expire_after=900.0)
threading.Thread(target=cleaner.start, daemon=True).start()
...
cleaner.stop()
```

`reservation_service` can be any object that has a
`cancel_expired_reservations(expire_after)` method returning the number of
reservations it cancelled.

The cleaner works as follows:

- **`start(cancel=None)`** blocks and calls that method once every `interval`
  seconds.
- **Stopping.** The loop ends when `stop()` is called, or when the optional
  `threading.Event` passed as `cancel` is set. `stop()` waits until the loop has
  ended.
- **`run_once()`** runs a single cleanup. It returns the number cancelled, or
  `None` if the service raised. In that case the error is logged and the loop
  carries on.

## What the package does not do

The package provides the pieces of a reservation service, not the service
itself:

- **No application layer.** There is no HTTP API and no reservation workflow.
  Nothing in the package uses the repositories, locks and cache together to
  place, confirm or cancel a reservation.
- **No cancellation logic.** The worker needs you to supply the service that
  actually cancels expired reservations.
- **No command.** There is no command-line entry point.
- **No migration files.** None are shipped with the package.

## Running the tests

```
pip install "ticketdesk[test]"
pytest
```