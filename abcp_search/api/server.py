from __future__ import annotations
from flask import Flask, request, jsonify, Response
from abcp_search.api import orchestrator
from abcp_search.api.orchestrator import REGISTRY, start_run, ARTIFACTS_ROOT
from abcp_search.config.env import ConfigurationError, get_search_config, validate_search_config
from abcp_search.config.logging import setup_logging
from abcp_search.planner.core import plan
from abcp_search.extraction.core import DOCUMENT_CONFIG, WEB_SEARCH_CONFIG, extract
from abcp_search.extraction.aggregate import aggregate
from abcp_search.ingestion.base import SearchHit, TransportError
from abcp_search.ingestion.documents import DocumentError, read_uploaded_document
from abcp_search.ingestion.firecrawl import crawl_documents
from abcp_search.ingestion.providers import build_firecrawl_client, build_search_provider

import os
import io
import logging
import zipfile
from dataclasses import replace
from pathlib import Path

import time
import json
from collections import deque, defaultdict
from flask_sock import Sock

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 21 * 1024 * 1024

OPENAPI_PATH = Path(__file__).with_name('openapi.json')

# Configuration helpers (overridable via app.config in tests)

def _get_api_key() -> str | None:
    if 'API_KEY' in app.config:
        return app.config.get('API_KEY')
    return os.environ.get('API_KEY')


def _get_rate_limit() -> tuple[int, float]:
    n = app.config.get('RATE_LIMIT_N')
    w = app.config.get('RATE_LIMIT_WINDOW_SEC')
    if n is None:
        n = int(os.environ.get('RATE_LIMIT_N', '5'))
    if w is None:
        w = float(os.environ.get('RATE_LIMIT_WINDOW_SEC', '1.0'))
    return int(n), float(w)


def _firecrawl_key() -> str | None:
    return app.config.get('FIRECRAWL_API_KEY') or os.environ.get('FIRECRAWL_API_KEY')

_recent: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=100))

sock = Sock(app)

def _client_ip() -> str:
    xff = request.headers.get('X-Forwarded-For')
    if xff:
        return xff.split(',')[0].strip()
    return request.remote_addr or 'anon'


def _check_api_key():
    api_key = _get_api_key()
    if api_key:
        provided = request.headers.get('X-API-Key')
        if provided != api_key:
            return jsonify({'error': 'unauthorized'}), 401
    return None


def _check_rate_limit(ip: str):
    n, window = _get_rate_limit()
    if n <= 0:
        return None
    now = time.time()
    dq = _recent[ip]
    while dq and now - dq[0] > window:
        dq.popleft()
    if len(dq) >= n:
        retry = max(0.0, window - (now - dq[0]))
        resp = jsonify({'error': 'rate_limited'})
        resp.status_code = 429
        resp.headers['Retry-After'] = f"{retry:.2f}"
        return resp
    dq.append(now)
    return None

_PROTECTED = ('/searches', '/history', '/extract', '/scrape', '/documents', '/settings')

# Requests that reach an external provider
_RATE_LIMITED = ('/searches', '/scrape')


@app.before_request
def _auth_and_rate_limit():
    if request.path.startswith(_PROTECTED):
        unauthorized = _check_api_key()
        if unauthorized is not None:
            return unauthorized
        if request.method == 'POST' and request.path in _RATE_LIMITED:
            rl = _check_rate_limit(_client_ip())
            if rl is not None:
                return rl
    return None


def _config_error(e: ConfigurationError):
    return jsonify({'error': 'configuration_error', 'detail': str(e)}), 400


@app.post('/searches')
def post_searches():
    payload = request.get_json(force=True, silent=True) or {}
    issuer = (payload.get('issuer') or '').strip()
    if not issuer:
        return jsonify({'error': 'issuer is required'}), 400
    # Credentials are checked before any run is queued
    try:
        orchestrator.get_orchestrator()
    except ConfigurationError as e:
        return _config_error(e)
    rid = start_run(issuer)
    return jsonify({'run_id': rid, 'status': 'queued'})

@app.get('/searches/<rid>')
def get_search(rid: str):
    r = REGISTRY.get(rid)
    if not r:
        return jsonify({'error': 'not_found'}), 404
    return jsonify({
        'run_id': r.id,
        'issuer': r.issuer,
        'status': r.status,
        'summary': r.summary,
        'queries': r.queries,
        'results': r.results,
        'artifacts': list(r.artifacts.keys()),
        'events': r.events,
        'error': r.error,
    })
@app.get('/searches/<rid>/artifacts/<name>')
def get_artifact(rid: str, name: str):
    r = REGISTRY.get(rid)
    if not r:
        return jsonify({'error': 'not_found'}), 404
    body = r.artifacts.get(name)
    if body is None:
        return jsonify({'error': 'artifact_not_found'}), 404
    if name.endswith('.csv'):
        mimetype = 'text/csv'
    elif name.endswith('.md'):
        mimetype = 'text/markdown'
    else:
        mimetype = 'application/octet-stream'
    return Response(body, mimetype=mimetype)

@app.get('/queries')
def get_queries():
    issuer = request.args.get('issuer', '')
    return jsonify({'issuer': issuer.strip(), 'queries': plan(issuer)})

@app.post('/extract')
def post_extract():
    payload = request.get_json(force=True, silent=True) or {}
    text = payload.get('text') or ''
    issuer = payload.get('issuer') or ''
    cfg = DOCUMENT_CONFIG if payload.get('mode') == 'document' else WEB_SEARCH_CONFIG
    rec = extract(text, issuer, cfg)
    if rec is not None:
        rec = rec.with_source(payload.get('source') or 'manual')
    return jsonify({'result': rec.to_dict() if rec else None})

@app.post('/scrape')
def post_scrape():
    payload = request.get_json(force=True, silent=True) or {}
    url = (payload.get('url') or '').strip()
    issuer = payload.get('issuer') or ''
    if not url:
        return jsonify({'error': 'url is required'}), 400
    key = _firecrawl_key()
    if not key:
        return _config_error(ConfigurationError('FIRECRAWL_API_KEY is not set'))
    client = build_firecrawl_client(key)
    try:
        if payload.get('crawl'):
            pages = crawl_documents(client.crawl(url, limit=int(payload.get('limit', 50))))
        else:
            data = client.scrape(url)
            title = (data.get('metadata') or {}).get('title') or ''
            pages = [SearchHit(url=url, title=title, content=data.get('markdown') or '')]
    except TransportError as e:
        logger.warning(f"Scrape failed for {url}: {e}")
        return jsonify({'error': 'scrape_failed', 'detail': str(e)}), 502
    records = []
    for page in pages:
        rec = extract(page.text, issuer, WEB_SEARCH_CONFIG)
        if rec is not None:
            records.append(rec.with_source(page.url or url))
    return jsonify({
        'url': url,
        'pages': len(pages),
        'results': [r.to_dict() for r in aggregate(records)],
    })

@app.post('/documents')
def post_document():
    upload = request.files.get('file')
    if upload is None:
        return jsonify({'error': 'No file uploaded'}), 400
    filename = upload.filename or 'document.pdf'
    try:
        content = read_uploaded_document(upload.stream, filename)
    except DocumentError as e:
        return jsonify({'error': 'invalid_document', 'detail': str(e)}), 400
    issuer = (request.form.get('issuer') or '').strip() or Path(filename).stem
    rec = extract(content, issuer, DOCUMENT_CONFIG)
    return jsonify({
        'fileName': filename,
        'content': content,
        'abcpInfo': rec.with_source(filename).to_dict() if rec else None,
    })

@app.get('/history')
def get_history():
    entries = orchestrator.get_history_store().list()
    return jsonify({'history': [e.to_dict() for e in entries]})

@app.delete('/history')
def delete_history():
    orchestrator.get_history_store().clear()
    return jsonify({'history': []})

@app.post('/settings/api-key')
def post_api_key():
    payload = request.get_json(force=True, silent=True) or {}
    key = (payload.get('api_key') or '').strip()
    if not key:
        return jsonify({'error': 'api_key is required'}), 400
    client = build_firecrawl_client(key)
    if not client.test_api_key():
        return jsonify({'error': 'invalid_api_key'}), 400
    app.config['FIRECRAWL_API_KEY'] = key
    cfg = get_search_config()
    if cfg.provider == 'firecrawl':
        cfg = replace(cfg, api_key=key)
        try:
            validate_search_config(cfg)
            orchestrator.configure(orchestrator.SearchOrchestrator(
                cfg, build_search_provider(cfg), history=orchestrator.get_history_store()))
        except ConfigurationError as e:
            return _config_error(e)
    logger.info("Firecrawl API key updated")
    return jsonify({'status': 'ok'})

@app.get('/openapi.json')
def get_openapi():
    try:
        spec = json.loads(OPENAPI_PATH.read_text())
        return jsonify(spec)
    except (OSError, ValueError):
        return jsonify({'error': 'openapi_not_found'}), 404

# WebSocket stream of run events
@sock.route('/searches/<rid>/events')
def ws_events(ws, rid):  # pragma: no cover (basic smoke only)
    r = REGISTRY.get(rid)
    if not r:
        ws.close()
        return
    last_idx = 0
    start = time.time()
    while ws.connected and time.time() - start < 10:
        evs = r.events
        if last_idx < len(evs):
            for ev in evs[last_idx:]:
                ws.send(json.dumps(ev))
            last_idx = len(evs)
        if r.status in ('completed', 'failed') and last_idx >= len(r.events):
            break
        time.sleep(0.05)

@app.get('/searches')
def list_searches():
    # Persisted runs only; in-flight runs are in the registry
    runs = []
    if ARTIFACTS_ROOT.exists():
        for p in sorted(ARTIFACTS_ROOT.iterdir()):
            if p.is_dir() and (p / 'run.json').exists():
                try:
                    meta = json.loads((p / 'run.json').read_text())
                except ValueError:
                    continue
                runs.append({
                    'run_id': meta.get('run_id') or p.name,
                    'issuer': meta.get('issuer'),
                    'status': meta.get('status'),
                    'summary': meta.get('summary'),
                    'artifacts': meta.get('artifacts', []),
                    'completed_at': meta.get('completed_at'),
                })
    return jsonify({'runs': runs})

@app.get('/searches/<rid>/download.zip')
def download_zip(rid: str):
    run_dir = ARTIFACTS_ROOT / rid
    if not run_dir.exists():
        return jsonify({'error': 'not_found'}), 404
    mem = io.BytesIO()
    with zipfile.ZipFile(mem, mode='w', compression=zipfile.ZIP_DEFLATED) as zf:
        for child in run_dir.iterdir():
            if child.is_file() and child.name != 'run.json':
                zf.writestr(child.name, child.read_bytes())
    mem.seek(0)
    return Response(mem.getvalue(), mimetype='application/zip', headers={
        'Content-Disposition': f'attachment; filename="{rid}.zip"'
    })




if __name__ == '__main__':
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', '8000')))
