import json
import threading
from typing import Any, Callable, Dict, Optional

import jwt
from flask import Flask, Response, jsonify, request, stream_with_context
from flask_cors import CORS

from config import Settings, load_settings
from errors import AuthenticationError, SecondBrainError, ValidationError
from fields import FIELD_ORDER, get_field
from LLM import MistralClient
from Session import SearchService, User
from supabase_search_history import SupabaseSearchHistory
from supabase_user_client import ClientFactory


def verify_supabase_jwt(token: str, jwt_secret: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Verify a JWT token from Supabase.

    Args:
        token (str): The JWT token to verify.
        jwt_secret (str): The project's JWT secret.

    Returns:
        Optional[Dict[str, Any]]: The decoded token if valid, None otherwise.
    """
    if not jwt_secret:
        print("Error: SUPABASE_JWT_SECRET not configured")
        return None
    try:
        return jwt.decode(
            token,
            jwt_secret,
            algorithms=["HS256"],
            options={"verify_aud": False}
        )
    except jwt.ExpiredSignatureError:
        print("JWT token expired")
        return None
    except jwt.InvalidTokenError as e:
        print(f"Invalid JWT token: {e}")
        return None


def get_authenticated_user(jwt_secret: Optional[str]) -> Optional[User]:
    """
    Returns the user of the request's bearer token if it is valid.

    Returns:
        Optional[User]: The user (sub claim and token) if valid, None otherwise.
    """
    auth_header = request.headers.get('Authorization', None)
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        claims = verify_supabase_jwt(token, jwt_secret)
        if claims and claims.get('sub'):
            return User(id=claims['sub'], token=token)
    return None


def get_client_id() -> str:
    """Key used for the anonymous cooldown."""
    return request.headers.get('X-Client-Id') or request.remote_addr or "anonymous"


def _int_arg(name: str, default: int) -> int:
    value = request.args.get(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Parameter {name} must be an integer")


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid request format")
    return data


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def create_app(settings: Optional[Settings] = None, llm: Optional[Any] = None,
               db_factory: Optional[Callable[[Optional[str]], Any]] = None,
               service: Optional[SearchService] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        settings: Process configuration, read from the environment when omitted.
        llm: Completion client, a MistralClient built from the settings when omitted.
        db_factory: Returns a supabase Client for a user token, a ClientFactory when omitted.
        service: Search service, built from the above when omitted.

    Returns:
        Flask: The configured application.
    """
    settings = settings or load_settings()

    app = Flask(__name__)
    CORS(app, supports_credentials=True, resources={r"/*": {"origins": "*", "methods": ["GET", "POST", "DELETE", "OPTIONS"], "allow_headers": ["Content-Type", "Authorization", "X-Requested-With", "X-Client-Id"], "expose_headers": ["X-Search-Id"]}})
    app.config['SECRET_KEY'] = settings.secret_key
    app.json.ensure_ascii = False

    if service is None:
        llm = llm or MistralClient(settings, debug=settings.debug)
        db_factory = db_factory or ClientFactory(settings)
        service = SearchService(settings, llm, db_factory, debug=settings.debug)
    app.extensions['search_service'] = service

    def current_user() -> Optional[User]:
        return get_authenticated_user(settings.supabase_jwt_secret)

    def require_user() -> User:
        user = current_user()
        if user is None:
            raise AuthenticationError("Authentication required")
        return user

    @app.errorhandler(SecondBrainError)
    def handle_error(error: SecondBrainError) -> Any:
        return jsonify(error.to_dict()), error.status_code

    @app.route('/api/search', methods=['GET'])
    def search() -> Any:
        """
        Without a field parameter: stream every field as Server-Sent Events, one `data:` message per field.
        With a field parameter: return that single field as JSON, with the search id in the X-Search-Id header.
        Pass it back as search_id to fetch the other fields without starting a new search.

        Validation and request limit errors are answered as JSON before anything is streamed.
        """
        user = current_user()
        client_id = get_client_id()
        field = request.args.get('field')
        search_id = request.args.get('search_id')

        if field:
            get_field(field)
            if search_id:
                session = service.get(search_id, user, client_id)
            else:
                session = service.start(request.args.get('query'), user, client_id,
                                        model=request.args.get('model'), language=request.args.get('language'))
            result = session.fetch_field(field)
            # later fields of the same search pass this back as search_id
            headers = {'X-Search-Id': session.search_id}
            if result.ok:
                return jsonify(result.to_event()), 200, headers
            return jsonify(result.to_event()), 502, headers

        session = service.start(request.args.get('query'), user, client_id,
                                model=request.args.get('model'), language=request.args.get('language'))
        cancel_event = threading.Event()
        print(f"[App] streaming {len(FIELD_ORDER)} fields for search {session.search_id}")

        def generate():
            try:
                for result in session.stream(cancel_event):
                    yield _sse(result.to_event())
                yield _sse(session.summary())
            finally:
                # client gone or stream finished
                cancel_event.set()
                service.finish(session.search_id)

        return Response(stream_with_context(generate()), mimetype='text/event-stream',
                        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'})

    @app.route('/api/search/start', methods=['POST'])
    def start_search() -> Any:
        """Open a search for clients that fetch fields one request at a time (GET /api/search?field=...&search_id=...)."""
        data = _json_body()
        session = service.start(data.get('query'), current_user(), get_client_id(),
                                model=data.get('model'), language=data.get('language'))
        return jsonify(session.to_dict()), 201

    @app.route('/api/search', methods=['POST'])
    def search_all() -> Any:
        """Compute every field server-side, in order, and answer with a single JSON object."""
        data = _json_body()
        session = service.start(data.get('query'), current_user(), get_client_id(),
                                model=data.get('model'), language=data.get('language'))
        try:
            return jsonify(session.run_all())
        finally:
            service.finish(session.search_id)

    @app.route('/api/history', methods=['GET'])
    def list_history() -> Any:
        user = require_user()
        page = _int_arg('page', 1)
        limit = _int_arg('limit', 10)
        history = service.history(user)
        rows, total = history.list_entries(page, limit, request.args.get('search'))
        return jsonify({
            'history': rows,
            'pagination': SupabaseSearchHistory.pagination(total, page, limit),
        })

    @app.route('/api/history', methods=['DELETE'])
    def delete_history() -> Any:
        """Delete one entry (?id=...) or the user's whole history."""
        user = require_user()
        history = service.history(user)
        history_id = request.args.get('id')
        if history_id:
            history.delete_entry(history_id)
        else:
            history.clear()
        return jsonify({'success': True})

    @app.route('/api/quota', methods=['GET'])
    def quota() -> Any:
        return jsonify(service.quota_status(current_user(), get_client_id()))

    @app.route('/health', methods=['GET'])
    def health() -> Any:
        """
        Health check endpoint to verify if the backend is running.
        """
        return jsonify({
            'status': 'healthy',
            'model': settings.mistral_model,
            'fields': list(FIELD_ORDER),
        })

    return app


if __name__ == '__main__':
    print("Starting backend...")
    settings = load_settings()
    app = create_app(settings)
    app.run(host='0.0.0.0', port=settings.port, debug=settings.debug, threaded=True)
