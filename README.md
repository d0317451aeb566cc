# cachemaster

The master node of a distributed cache. Cache servers connect to it over TCP
and send heartbeats. The master keeps the list of cache servers it has heard
from, builds a consistent-hash ring from that list, and pushes the list to
every connected cache server whenever a server joins or is dropped. Clients
can ask the master for the current list.

## Installing

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Running the master

```
cachemaster [--host HOST] [--port PORT] [--threads N]
```

- `--host`: address to listen on (default: all addresses).
- `--port`: port to listen on (default: 7000). Ports outside 1024-65535 are
  refused.
- `--threads`: number of worker threads that handle connection I/O
  (default: 4).

The master serves until it is interrupted. Connections that stay silent for
2 seconds are closed.

## Wire protocol

Every request is one JSON object holding the integer fields `machineType` and
`req_type`. Requests are not framed: whatever one read from the socket
returns is decoded as a single JSON object, and input that is not a valid
request is logged and dropped.

| `machineType` | sender       |
|---------------|--------------|
| 0             | cache server |
| 1             | client       |
| 2             | master       |

- A cache server sends `{"machineType": 0, "req_type": 0}` as its heartbeat.
  The first heartbeat from an address adds it to the list; later ones reset
  its timer. If the timer runs out (2.5 seconds after the last heartbeat),
  the server is dropped and the new list is announced.
- A client sends `{"machineType": 1, "req_type": 0}` to ask for the list.
- Requests with `machineType` 2 are accepted and ignored.

Replies are compact JSON with sorted keys:

```
{"data":{"iplist":["127.0.0.1:40000"]},"machineType":2,"req_type":0}
```

The `req_type` of a reply says why it was sent:

- to a client: `1`, the list it asked for;
- to cache servers: `0` when a server was added, `1` when a server was shut
  down through `Manager.shut_down_one_machine`, `2` when a server missed its
  heartbeat.

## Using the pieces

```python
from cachemaster.consistent_hash import HashRing, fnv_hash

ring = HashRing(10)
ring.refresh(["10.0.0.1:8080", "10.0.0.2:8080"])
server = ring.find("some-key")   # raises LookupError on an empty ring
```

- `cachemaster.manager`: `Manager` keeps the cache-server list and answers
  requests; `get_which_cache_server(key)` returns the server for a key, or
  `""` when none is known. `get_manager()` and `reset_manager()` manage one
  process-wide instance; `main()` is the `cachemaster` command.
- `cachemaster.net_server`: `NetServer`, the event-driven TCP server
  (`start`, `stop`, `run_once`, `address`), and `event_modes(trig_mode)`.
- `cachemaster.connection`: `Connection`, one socket with buffered reads and
  writes.
- `cachemaster.protocol`: the request enums, `Req`, `parse_req`, `Request`
  and `make_response`.
- `cachemaster.poller`: `Poller`, epoll where available and `selectors`
  elsewhere, with epoll-style `Event` flags.
- `cachemaster.buffer`: `Buffer`, a growable byte buffer for socket I/O.
- `cachemaster.timer`: `TimerManager`, a min-heap of millisecond timeouts
  keyed by id.
- `cachemaster.safe_queue`: `BoundedQueue` and `LinkedQueue`, thread-safe
  queues.
- `cachemaster.thread_pool`: `Task` and `ThreadPool`, a pool that grows and
  shrinks between a minimum and a maximum number of threads.
- `cachemaster.work_stealing`: `WorkStealingPool`, whose `submit` returns a
  `concurrent.futures.Future`, and `WorkStealingQueue`.
- `cachemaster.log`: `LogLevel` and `LogFile`, a file logger whose lines are
  written by a consumer thread.

## What it does not do

- It stores no cached data and runs no cache server or client; it only
  tracks cache servers and hands out their list.
- There is no standby master: `net_server` defines `SLAVEMASTER_IP` and
  `SLAVEMASTER_PORT`, but nothing connects to or fails over to that address.
- A connection that closes removes its address from the list without
  announcing the change to the other cache servers.