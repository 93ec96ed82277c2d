# fastcgikit

Building blocks for FastCGI applications. The package has no third-party
dependencies.

- **`fastcgikit.protocol`** covers the FastCGI version 1 wire format.
  - The enumerations are `RecordType`, `Role` and `ProtocolStatus`.
  - `RequestId` is an ordered, frozen pair of socket and FastCGI id.
  - `Header.pack` / `Header.unpack`, `BeginRequest.unpack` (with `kill()`),
    `UnknownType.pack` and `EndRequest.pack` convert the record structures to
    and from bytes.
  - `process_param_header(data)` reads one name/value pair from a `PARAMS`
    body. It returns `(name, value, end)`, or `None` when the data is too short.
  - `get_record_size(n)` gives the padded size of a record. Content longer
    than 0xffff bytes is counted as 0xffff.
  - `management_reply(name, value)` builds a complete `GET_VALUES_RESULT`
    record.
- **`fastcgikit.stream`** provides `FcgiStream`, a text output stream.
  - It buffers up to 8192 characters. On flush it encodes them as UTF-8 and
    sends `OUT` or `ERR` records, each padded to a multiple of 8 bytes and
    holding at most 0xffff bytes of content.
  - `dump(data)` and `dump_stream(stream)` send raw bytes after the buffered
    text, without buffering or encoding them.
  - `close()`, or leaving a `with` block, flushes the buffer and refuses any
    further output.
- **`fastcgikit.http`** holds HTTP helpers.
  - `atoi` and `atof` read a number from the start of the data and stop at
    the first character that does not belong to it.
  - `percent_escaped_to_bytes` decodes `%xx` escapes and turns `+` into a
    space.
  - `decode_url_encoded(data, field_separator=b"&")` returns a list of
    `(name, value)` pairs sorted by name.
  - `RequestMethod`, with `RequestMethod.from_label`, names the request
    method; `ERROR` marks one that was not recognised.
- **`fastcgikit.environment`** provides `Environment`.
  - `fill()` reads the bytes of a `PARAMS` body: host, path info, cookies,
    query string (`gets`), accept languages, content type and boundary,
    request method, ports, `If-Modified-Since` and more. Parameters it does
    not recognise go into `others`.
  - `fill_post_buffer()` collects the POST body and `parse_post_buffer()`
    parses it. Multipart form data gives `posts` and `files` (`File`
    objects); URL-encoded form data gives `posts`.
- **`fastcgikit.sql`** encodes query parameters in the PostgreSQL binary
  format.
  - `SqlType` lists the supported types by oid.
  - `Parameter(value, sql_type=None)` encodes a single value. Without a
    `sql_type`, the type is inferred from the value.
  - `Parameters(*values)` holds a whole query's parameters. `set_null` and
    `is_null` mark and test columns sent as null. `build()` returns the
    oids, raw data, sizes and formats.

## What it does not do

This package works with data only. It has no server or listener: it does not
accept FastCGI connections, read records from sockets or route requests.
`FcgiStream` hands finished records to a send function that the caller
supplies. `fastcgikit.sql` only encodes parameters; it does not connect to a
database, send queries or read results.

## Installation

```
pip install fastcgikit
```

## Example: writing a response

```python
from fastcgikit.protocol import RecordType, RequestId
from fastcgikit.stream import FcgiStream

records = []
with FcgiStream() as stream:
    stream.configure(RequestId(socket=None, id=1), RecordType.OUT,
                     lambda socket, record: records.append(record))
    stream.write("Content-Type: text/plain\r\n\r\nHello")
# records now holds complete OUT records
```

## Example: parsing a request

```python
from fastcgikit.environment import Environment

env = Environment()
env.fill(params_record_body)          # bytes of the PARAMS record content
env.fill_post_buffer(stdin_bytes)
env.parse_post_buffer()
print(env.gets, env.posts, env.files)
```

## Example: SQL parameters

```python
from fastcgikit.sql import Parameter, Parameters, SqlType

params = Parameters(Parameter(42, SqlType.INTEGER), "hello", [1, 2, 3])
params.set_null(1)
built = params.build()
print(built.oids, built.sizes, built.formats)
```

## Running the tests

```
pip install -e ".[test]"
pytest
```