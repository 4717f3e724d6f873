# fcgikit

Building blocks for FastCGI applications, written in plain Python with
nothing outside the standard library.

## Modules

- `fcgikit.protocol` covers the FastCGI version 1 wire format.
  - The enumerations are `RecordType`, `Role` and `ProtocolStatus`.
  - The record pieces are `Header` (`pack`, `unpack`), `BeginRequest`
    (`unpack`, `kill`), `UnknownType` (`pack`) and `EndRequest` (`pack`).
  - `RequestId` ties a FastCGI request id to the socket it arrived on. It
    sorts by socket first and then by id.
  - `get_record_size` gives the padded size of a record.
  - `encode_param`, `process_param_header` and `iter_params` write and read
    name-value pairs in `PARAMS` records.
  - `management_reply` builds a complete `GET_VALUES_RESULT` record.
- `fcgikit.stream` provides `FcgiStream`, a buffered writer for the `OUT`
  or `ERR` stream of a request.
  - Text is encoded as UTF-8. The buffer holds 8192 bytes and is sent
    automatically when full, and also on `flush()` and `close()`.
  - Data is split into padded records of at most 65535 content bytes. Each
    record goes to a `send(socket, record)` callable that you supply.
  - `dump()` sends raw bytes and `dump_stream()` sends a binary stream,
    both without going through the buffer.
  - It can be used as a context manager.
- `fcgikit.httputil` holds the helpers used while parsing requests.
  - `RequestMethod` lists the request methods.
  - `atoi` and `atof` are lenient number parsers that stop at the first
    character that does not fit. `atof` returns a single-precision value.
  - `percent_decode` decodes percent escapes and turns `+` into a space.
  - `decode_url_encoded` splits query strings, form bodies and cookies
    into `(name, value)` pairs, in order.
  - `to_text` decodes UTF-8. Invalid input is logged as a warning and
    gives an empty string.
- `fcgikit.environment` provides `Environment` and `File`.
  - `Environment.fill()` reads a `PARAMS` body. It sets the host, the path
    segments, the request method, the content type and boundary, the
    accepted languages, the ports and addresses, and `if_modified_since`
    as a Unix timestamp. It also collects `gets` and `cookies`. Parameters
    it does not recognise go into `others`.
  - `fill_post_buffer()` gathers the request body.
  - `parse_post_buffer()` parses a URL-encoded or `multipart/form-data`
    body into `posts` and uploaded `files`. It returns False for any other
    content type.
- `fcgikit.sqlparams` encodes query parameters in PostgreSQL's binary
  format. It provides `SqlType`, `Parameter` and `Parameters`.
  - The supported types are booleans, small, normal and big integers,
    real and double precision floats, text, bytea, timestamps with time
    zone, dates and inet addresses. Arrays of integers, floats and text
    are supported too.
  - Every column carries its type oid and binary format code.
  - Any column can be set to null.
  - `build()` fills in `raws` and `sizes`.
- `fcgikit.curl` provides `Curl`, one HTTP transfer.
  - You can set the URL, add header lines and turn SSL verification on or
    off. Anything written to it becomes the request body, which makes the
    transfer a POST; with no body it is a GET.
  - `perform()` carries out the transfer with `urllib` and collects the
    response code, headers and body.
  - In text mode the body and headers are decoded from UTF-8.
  - A failed transfer raises `CurlError`.
  - `parse_header_line` splits a raw header line into its key and value.
- `fcgikit.curler` provides `Curler`, which performs queued `Curl`
  transfers in the background with a limit on how many run at once.
  - Each transfer's `callback` is called once it completes.
  - `stop()` first finishes all queued work. `terminate()` quits at once.
  - Follow either with `join()`.

## Examples

Build a parameter block and read it back:

```python
from fcgikit.protocol import encode_param, iter_params

block = encode_param(b"REQUEST_METHOD", b"GET") + encode_param(b"QUERY_STRING", b"a=1&b=2")
for name, value in iter_params(block):
    print(name, value)
```

Turn request parameters into an environment:

```python
from fcgikit.environment import Environment

env = Environment()
env.fill(block)
print(env.request_method, env.gets)   # RequestMethod.GET [('a', '1'), ('b', '2')]
```

Send response output as FastCGI records:

```python
from fcgikit.protocol import RecordType, RequestId
from fcgikit.stream import FcgiStream

records = []
request_id = RequestId(socket=3, fcgi_id=1)
with FcgiStream(request_id, RecordType.OUT, lambda socket, record: records.append(record)) as out:
    out.write("Content-Type: text/plain\r\n\r\nHello, world!")
```

Encode SQL parameters:

```python
from fcgikit.sqlparams import Parameters, SqlType

params = Parameters((SqlType.INTEGER, 42), "hello", True)
params.set_null(2)
params.build()
print(params.oids, params.raws, params.sizes)
```

Plain Python integers need an explicit `SqlType`. Floats are taken as
double precision.

## What the package does not do

fcgikit gives you the pieces, not a running application. It has no
FastCGI server. It does not listen on or poll sockets, accept
connections, dispatch requests or manage a request's lifetime. You read
records from your own connection and deliver the bytes that
`FcgiStream` hands you.

`fcgikit.sqlparams` only encodes parameters. It does not connect to a
database, run queries or decode result sets.

There is no command-line program.

## Installing

```
pip install fcgikit
```

## Running the tests

```
pip install -e ".[test]"
pytest
```