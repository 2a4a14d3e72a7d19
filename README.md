# coheredb

A small distributed key-value store made of three parts:

- **a manager**, which keeps a registry of storage servers, routes each key to
  one of them through a consistent hash ring, health-checks them every 30
  seconds and drops those that do not answer;
- **storage servers**, each holding its own on-disk key-value store and
  answering `get`, `set` and `delete` over gRPC;
- **a client**, a command-line tool that talks to the manager.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running a cluster

### 1. Start the manager

The manager reads a TOML file (default `config/manager.toml`):

```toml
[manager]
grpc_addr = "127.0.0.1:9090"
http_addr = "127.0.0.1:8080"
```

```
coheredb-manager --config config/manager.toml
```

It serves `Get`, `Set` and `Delete` to clients over gRPC at `grpc_addr`, and
an HTTP interface at `http_addr`:

- `POST /register` with a JSON body `{"region": "...", "grpc_addr": "..."}`
  adds a storage server and answers with
  `{"success": true, "server_uuid": "...", "message": "Server registered successfully"}`.
  Both fields are required; a missing one gives status 400.
- `GET /health` answers `{"status": "healthy", "time": ...}` with the current
  time in RFC 3339 form.
- `GET /servers` answers with a fixed status message.

Other methods on these paths get status 405. The manager runs until it
receives SIGINT or SIGTERM.

### 2. Start storage servers

Each server reads its own TOML file (default `config.toml`):

```toml
[server]
region = "east"
grpc_addr = "127.0.0.1:50051"
manager_addr = "127.0.0.1:8080"
```

```
coheredb-server --config config/server_east.toml --register
```

With `--register` the server first posts to the manager's `/register`
endpoint, waiting 1, 2, 3, … seconds between failed attempts, and starts
serving only once the manager accepts it. Without `--register` it serves at
once and the manager does not know about it.

Each server keeps its data in the directory `../../data/db_<region>`,
relative to the directory it is started from.

### 3. Use the client

```
coheredb-client --op set --key greeting --value hello
coheredb-client --op get --key greeting
coheredb-client --op delete --key greeting
```

`--addr` selects the manager's gRPC address (default `127.0.0.1:9090`).
The single-dash forms (`-op=get -key=greeting`) are accepted too. Each request
has a 10-second timeout. Without `--op` or `--key`, with `set` but no
`--value`, with an unknown operation, or when the request fails, the client
prints a message and exits with status 1.

## Using the pieces from Python

```python
from coheredb.database import Database, KeyNotFoundError
from coheredb.hashing import ConsistentHasher

with Database("data/db_example") as db:
    db.set("colour", "blue")
    assert db.get("colour") == b"blue"
    db.delete("colour")
    try:
        db.get("colour")
    except KeyNotFoundError:
        pass

ring = ConsistentHasher()
ring.add_node("server-a")
ring.add_node("server-b")
owner = ring.get_node("colour")
```

- `coheredb.database.Database` stores string values and returns them as
  bytes; `get` and `delete` of a missing key raise `KeyNotFoundError`, other
  storage failures raise `DatabaseError`. `cleanup()` closes the store and
  removes its directory.
- `coheredb.hashing.ConsistentHasher` places one point per node on a CRC-32
  ring; `get_node` returns `None` when the ring is empty.
- `coheredb.manager.DBManager` holds the server registry (`add_server`,
  `remove_server`, `server_ids`, `health_check_servers`) and routes
  `get_key`, `set_key` and `delete_key` to the owning server, raising
  `ManagerError` when no server is available or the server reports an error.
- `coheredb.server_http.HttpServer` serves a single `Database` over HTTP at
  `/get`, `/set` and `/delete`, taking `key` and `value` from the query string
  or a form body. The `coheredb-server` command does not start it.
- `coheredb.protocol` holds the request and response messages, the client
  stubs `DBServerStub` and `DBManagerStub`, and the functions that register a
  service on a `grpc.Server`.

## What it does not do

- Keys are not replicated: each key lives on exactly one server, and when a
  server joins or leaves, keys are not moved to their new owner.
- `GET /servers` does not list the registered servers; it returns a fixed
  message.
- The gRPC messages are encoded as JSON, not Protocol Buffers, so only
  clients built on `coheredb.protocol` can talk to these services.