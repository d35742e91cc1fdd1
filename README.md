# eventapi

A small HTTP API that records user events in PostgreSQL and answers
queries about them: paginated event listings, per-user event history and
per-type statistics. It runs as a multi-threaded WSGI server from the
standard library.

## Installation

```
pip install .
```

A PostgreSQL server is needed, along with a PostgreSQL driver that
SQLAlchemy can use for `postgresql://` URLs (for example `psycopg2`);
the package does not install one.

## Configuration

Both commands read a YAML file. The server reads `config.yml` by default
(change it with `-c`); the database commands always read `config.yml`
from the current directory.

```yaml
debug: false          # when true, error responses carry the full error text
logFile: app.log      # JSON log lines are appended here (default: app.log)
db:
  host: localhost
  port: "5432"
  user: user
  password: password
  database: events
```

`debug` must be a boolean; the `db` values must be strings or numbers.
The connection uses `sslmode=disable` and a pool of up to 50 connections.

## Preparing the database

```
eventapi-db init    # drop and create the users, event_types and events tables and their indexes
eventapi-db seed    # fill them with generated test data
```

`seed` truncates the tables and drops the indexes, inserts 1,000 users,
100 event types and 10,000,000 events (in 2,000 blocks of 5,000, loaded
by up to 50 threads), then rebuilds the indexes and resets the id
sequences.

## Running the server

```
eventapi server                 # listens on port 12001
eventapi server -p 8080 -c other.yml
```

Options:

- `-p`, `--port`: port to listen on (default 12001)
- `-c`, `--config`: path to the configuration file (default `config.yml`)

The server runs until interrupted with Ctrl-C. If it cannot start, the
error is printed to standard error and the command exits with status 1.

## Endpoints

| Method | Path                      | Description                                   |
|--------|---------------------------|-----------------------------------------------|
| GET    | `/ping`                   | Returns `ok`                                  |
| POST   | `/events`                 | Records an event                              |
| GET    | `/events`                 | Lists events, newest first                    |
| GET    | `/users/{userId}/events`  | Up to 1,000 latest events of one user         |
| GET    | `/stats`                  | Totals, unique users and top pages for a type |

### POST /events

```json
{
  "user_id": 42,
  "event_type": "page_view",
  "timestamp": "2025-01-01 12:00:00",
  "metadata": {"page": "/article7"}
}
```

The user and the event type are created if they do not exist yet. The
stored event is returned with its new `id`, its `timestamp` as sent,
`metadata`, `user_id` and `type_id`. A body that cannot be parsed gives
a 400 error.

### GET /events

Query parameters `page` (default 1) and `limit` (default 100); both must
be integers, otherwise a 400 error is returned. The reply holds `data`
(a list of events, or `null` when there are none) and `query` with
`page`, `limit` and `total`, the count of all stored events. Each event
has `id`, `timestamp` (RFC 3339), `metadata`, `user_id`, `type_id` and
`type`.

### GET /users/{userId}/events

Up to 1,000 of the user's newest events, shaped as above, with `query`
holding `limit` (1000) and `total`. A non-integer id or an unknown user
gives a 404 error.

### GET /stats

Query parameters `type` (event type name), `from` and `to` (both optional,
in the form `YYYY-MM-DD HH:MM:SS`). The reply:

```json
{"total_events": 120, "unique_users": 37, "top_pages": {"/article7": 15}}
```

An unknown type or an unparsable date gives a 404 error.

### Errors

Error replies are JSON objects with `code`, `error` (the HTTP status
text) and `message`. Unexpected failures are logged to the log file and
answered with status 500; the message is `***` unless `debug` is on, in
which case it holds the error with its trace. Paths that match no route
get a plain-text `404 page not found`; a known path with the wrong
method gets status 405 with an `Allow` header.

## Using it as a library

- `eventapi.router` holds `Mux` (a WSGI application with `{name}` path
  parameters and mounted sub-routers), `RouterManager` and `Group`
  (register handlers wrapped in middleware), `ServerConfig` and
  `run_server`.
- `eventapi.routes.registration_routes` installs this API's middleware
  and endpoints on a `RouterManager`.
- `eventapi.storage.create_storage` opens the settings, logger and
  database engine; `eventapi.container.make_container` gives handlers a
  per-request view of them.
- `eventapi.repository.Repository` runs the queries; `build_where`
  builds the statistics filter.
- `eventapi.responses.ResponseFactory` builds string, JSON and error
  responses that render into an `eventapi.writer.ResponseWriter`.
- `eventapi.errors.AppError` is the error type raised throughout; it
  keeps a trace of the places it passed through.

## What it does not do

There is no authentication, no TLS and no request validation beyond the
parsing described above. The package ships no database driver and does
not create the database itself; `eventapi-db init` only creates the
tables in an existing one.

## Development

```
pip install -e ".[test]"
pytest
```