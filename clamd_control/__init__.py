"""clamd control is a REST interface over the ClamAV daemon client.

The ClamAV daemon (clamd) can be either reached via Unix domain socket
or TCP socket.  This behaviour can be specified via configuration.

Configuration: all configuration is managed through environment
variables.  All environment variables starting with "CLAMAV_" prefix
are loaded into the application.

No authentication of any type is implemented whatsoever: be sure that
your service is adequately protected.  For this reason the clamd
SHUTDOWN command is not exposed.

The following variables are accepted:

 - CLAMAV_CLAMD_SOCKET_PATH : application will connect to clamd
    running on Unix socket at path specified.
 - CLAMAV_CLAMD_HOST : application will connect to clamd running on TCP
    socket at host specified; also CLAMAV_CLAMD_PORT is expected
 - CLAMAV_CLAMD_PORT : use with CLAMAV_CLAMD_HOST
 - CLAMAV_CLAMD_STREAM_HOST : host of STREAM data ports when using the
    Unix socket (default 127.0.0.1)
 - CLAMAV_CLAMD_TIMEOUT : socket timeout in seconds (default: OS
    defaults)
 - CLAMAV_CLAMD_MAX_RESPONSE_SIZE : max bytes read for each response
 - CLAMAV_CLAMD_CMD_TERMINATOR : "newline", "nul" (or "null") or empty
    for legacy commands

"""
import logging

from flask import Flask, jsonify, request
from flask_swagger import swagger
from werkzeug.exceptions import HTTPException

from .clamd import Clamd, ClamdProtocolError, ClamdTransportError, \
    DEFAULT_HOST, DEFAULT_SOCKET_PATH, MAX_RESPONSE_SIZE

##
# Init app and config
##

app = Flask(__name__)

# load all env starting with CLAMAV_ and make them available in
# app.config without CLAMAV_
app.config.from_prefixed_env("CLAMAV")

# fix gunicorn logging
if __name__ != '__main__':
    gunicorn_logger = logging.getLogger('gunicorn.error')
    if gunicorn_logger.handlers:
        app.logger.handlers = gunicorn_logger.handlers[:]
        app.logger.setLevel(gunicorn_logger.level)
        app.logger.propagate = False

CMD_TERMINATORS = {
    "": b"",
    "newline": b"\n",
    "nul": b"\x00",
    # from_prefixed_env turns "null" into None, see cmd_terminator()
    "null": b"\x00",
}

##
# API
##


@app.route("/api/v1/doc")
def api_doc():
    """OpenAPI spec of the v1 API.
    """
    swag = swagger(app)
    swag['info']['version'] = "1.0"
    swag['info']['title'] = "clamd control"
    swag['info']['description'] = \
        "Control and scan with ClamAV daemon via REST API"
    return jsonify(swag)


@app.route("/health", methods=["GET"])
@app.route("/api/v1/clamav/ping", methods=["GET"])
def ping():
    """Ping clamav ensuring connection is up.
    ---
    tags:
      - status
    responses:
      200:
        description: Pong
        content: application/json
        schema:
          type: object
          properties:
            status:
              type: string
              description: Status of the ping
              example: OK
            message:
              type: string
              description: PONG if clamd replied
              example: PONG
      503:
        description: clamd did not reply
    """
    app.logger.debug("Pinging clamd...")
    if clamd_instance().ping():
        return {"status": "OK", "message": "PONG"}, 200
    return {"status": "KO", "message": None}, 503


@app.route("/api/v1/clamav/version", methods=["GET"])
def clamav_version():
    """Get version of connected clamav instance.
    ---
    tags:
      - status
    responses:
      200:
        description: ClamAV version
        content: application/json
        schema:
          type: object
          properties:
            message:
              type: string
              description: ClamAV version message
              example: ClamAV 1.4.2
      503:
        description: clamd not available
    """
    version = clamd_instance().version()
    if version is None:
        return {"error": "Unable to get ClamAV version."}, 503
    return {"message": version}


@app.route("/api/v1/clamav/ready", methods=["GET"])
def ready():
    """Check clamd is reachable and answering.
    ---
    tags:
      - status
    responses:
      200:
        description: clamd is ready
      503:
        description: clamd is not ready
    """
    is_ready = clamd_instance().ready()
    return {"ready": is_ready}, 200 if is_ready else 503


@app.route("/api/v1/clamav/reload", methods=["POST"])
def reload():
    """Reload clamd virus databases.
    ---
    tags:
      - control
    responses:
      200:
        description: clamd acknowledged
        content: application/json
        schema:
          type: object
          properties:
            message:
              type: string
              example: RELOADING
    """
    app.logger.info("Requesting clamd reload")
    resp = clamd_instance().reload()
    if resp is None:
        return {"error": "Unable to reload ClamAV."}, 503
    return {"message": resp.strip()}


@app.route("/api/v1/clamav/scan", methods=["POST"])
def scan_file():
    """Scan a file attached to the request.
    ---
    tags:
      - scan
    parameters:
      - in: formData
        name: file
        description: File to scan
        required: true
    responses:
      200:
        description: Scanning result
        content: application/json
        schema:
          type: object
          properties:
            status:
              type: string
              description: Status returned by clamd
              example: Eicar-Test-Signature FOUND
            input_file:
              type: string
              description: Input file that was scanned
              example: myfile.txt
            infected:
              type: boolean
              description: Whether status is anything but OK
            file_size:
              type: integer
              description: Size of the file scanned in bytes
              example: 256
    """
    if 'file' not in request.files:
        return {"error": "No file attached"}, 400
    file_to_analyze = request.files['file']
    filename = file_to_analyze.filename or ""
    # sanitize filename to prevent log injection
    safe_filename = filename.replace('\r\n', '').replace('\n', '')

    # STREAM sends the whole buffer at once
    data = file_to_analyze.stream.read()
    app.logger.debug("Starting scan for file \"%s\"", safe_filename)
    result = clamd_instance().stream_scan(data)

    app.logger.info("Scanned file \"%s\" (%d bytes) with status %s",
                    safe_filename, len(data), result.status)

    return {
        "status": result.status,
        "input_file": filename,
        "infected": not result.is_clean,
        "file_size": len(data),
    }


@app.route("/api/v1/clamav/scan-path", methods=["POST"])
def scan_path():
    """Scan a path on the clamd host.
    ---
    tags:
      - scan
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            path:
              type: string
              description: Path to scan, as seen by clamd
            recursive:
              type: boolean
              description: Use CONTSCAN and don't stop at first virus
    responses:
      200:
        description: Scanning results, one per path reported by clamd
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}
    path = body.get("path")
    err = path_error(path)
    if err:
        return {"error": err}, 400

    clamd = clamd_instance()
    if body.get("recursive"):
        results = clamd.continue_scan(path)
    else:
        results = [clamd.file_scan(path)]

    return {
        "results": [{"path": r.path, "status": r.status} for r in results],
    }


@app.route("/api/v1/clamav/infected", methods=["GET"])
def infected():
    """Tell whether a path on the clamd host is infected.
    ---
    tags:
      - scan
    parameters:
      - in: query
        name: path
        required: true
    responses:
      200:
        description: infected is null when it could not be determined
    """
    path = request.args.get("path")
    err = path_error(path)
    if err:
        return {"error": err}, 400
    return {"path": path, "infected": clamd_instance().infected(path)}


##
# Error handlers
##


@app.errorhandler(ClamdTransportError)
def handle_transport_error(e):
    """clamd could not be reached.
    """
    app.logger.error("clamd not reachable: %s", str(e))
    return {"error": str(e)}, 503


@app.errorhandler(ClamdProtocolError)
def handle_protocol_error(e):
    """clamd replied with something we can't parse.
    """
    app.logger.error("Unable to parse clamd response: %s", str(e))
    return {"error": str(e)}, 502


@app.errorhandler(HTTPException)
def handle_http_exception(e):
    """Handle an HTTP exception and return JSON.
    """
    str_e = str(e)
    if e.code not in [404, 405, 415]:
        # don't pollute logs, these statuses does not concern us
        app.logger.exception("HTTP exception: %s", str_e)
    return {"error": str_e}, e.code


@app.errorhandler(Exception)
def handle_exception(e):
    """Handle an generic exception and return JSON.
    """
    str_e = str(e)
    app.logger.exception("Generic exception: %s", str_e)
    return {"error": str_e}, 500


##
# Helpers
##


def path_error(path) -> str | None:
    """Tell what is wrong with a path given by the user, if anything.
    """
    if not path:
        return "No path given"
    if not isinstance(path, str):
        return "Path must be a string"
    if "\n" in path or "\x00" in path:
        # it would end the clamd command early
        return "Path must not contain newline or NUL characters"
    return None


def clamd_instance() -> Clamd:
    """Get a clamd client based on app config.
    """
    # remember, these are env variables prefixed with CLAMAV_
    host = app.config.get("CLAMD_HOST")
    port = app.config.get("CLAMD_PORT")
    timeout = app.config.get("CLAMD_TIMEOUT")
    options = {
        "max_response_size": int(app.config.get("CLAMD_MAX_RESPONSE_SIZE")
                                 or MAX_RESPONSE_SIZE),
        "cmd_terminator": cmd_terminator(),
    }
    if timeout is not None:
        timeout = float(timeout)

    if host is not None and port is not None:
        return Clamd.tcp(host=host, port=int(port), timeout=timeout,
                         **options)

    socket_path = app.config.get("CLAMD_SOCKET_PATH") or DEFAULT_SOCKET_PATH
    stream_host = app.config.get("CLAMD_STREAM_HOST") or DEFAULT_HOST
    return Clamd.unix_socket(socket_path=socket_path,
                             stream_host=stream_host,
                             timeout=timeout,
                             **options)


def cmd_terminator() -> bytes:
    """Get the clamd command terminator from app config.
    """
    value = app.config.get("CLAMD_CMD_TERMINATOR", "")
    if value is None:
        # CLAMAV_CLAMD_CMD_TERMINATOR=null is parsed as JSON null
        value = "null"
    return CMD_TERMINATORS[str(value).lower()]


##
# DEV runner
##

if __name__ == "__main__":
    # don't run directly in prod, use a production grade wsgi server
    # like gunicorn
    app.run(host="0.0.0.0", port=8080, debug=True)
