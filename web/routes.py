"""
Flask routes: batch evaluation and engine health.
"""

import logging

from flask import current_app, jsonify, request

from evalpool.constants import DEFAULT_DEPTH
from evalpool.errors import InvalidInput
from evalpool.health import check_engine

log = logging.getLogger(__name__)


def _service(name: str):
    return current_app.extensions['evalpool'][name]


def register_routes(app):
    """Register all routes with the Flask app."""

    @app.route('/eval', methods=['POST'])
    def evaluate():
        """
        Evaluate a batch of positions.

        Expects JSON body:
        {
            "fens": ["<fen>", ...],
            "depth": 15            (optional, integer or numeric string)
        }

        Returns {"evaluatedMoves": [{position, move, evaluation, status}, ...]}
        in the order the positions were given.
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'missing JSON body'}), 400

        fens = data.get('fens')
        depth = data.get('depth', DEFAULT_DEPTH)
        count = len(fens) if isinstance(fens, list) else 0
        log.info("Evaluating %d position(s) at depth %s", count, depth)

        try:
            results = _service('dispatcher').evaluate_batch(fens, depth)
        except InvalidInput as e:
            return jsonify({'error': str(e)}), 400

        return jsonify({'evaluatedMoves': [r.to_dict() for r in results]})

    @app.route('/')
    def health():
        """Report whether the engine binary is present and answers uci."""
        settings = _service('settings')
        report = check_engine(settings.engine_path, settings.health_timeout)

        body = report.to_dict()
        body['pool'] = _service('pool').stats()
        return jsonify(body), 200 if report.ok else 500
