"""
Flask Web Application for the Service Note System

JSON API over the conversation engine, the preview builders and the
note submission pipeline.
"""

from flask import Flask, request, jsonify
import logging
import threading

from service_notes.config import ExtractorKind, Settings
from service_notes.core.conversation_engine import ConversationEngine
from service_notes.core.expression_rules import apply_expression_rules
from service_notes.core.field_schema import normalize_fields
from service_notes.core.narrative_builder import build_detailed, build_facts, build_summary
from service_notes.core.note_form import fields_from_note_form, restore_form_state
from service_notes.core.note_submission import NarrativeFormatter, NoteSubmitter
from service_notes.errors import NarrativeTimeoutError, ValidationError
from service_notes.persistence import NoteStore
from service_notes.utils.helpers import build_extractor, build_hf_client, generate_conversation_id

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'service_notes'


def _fields_from_payload(data):
    """Structured record from {'form': ...} or {'fields': ...}, None if neither"""
    if not isinstance(data, dict):
        return None

    if isinstance(data.get('form'), dict):
        form = restore_form_state(
            {'form': data['form']},
            fallback_destination=data.get('destination') or ''
        )
        return fields_from_note_form(form)

    if isinstance(data.get('fields'), dict):
        return normalize_fields(data['fields'])

    return None


def _error(message, status):
    return jsonify({
        'success': False,
        'error': message
    }), status


def create_app(settings=None, extractor=None, store=None, formatter=None,
               run_in_background=True):
    """
    Build the Flask app

    Args:
        settings: Settings (loaded from the environment when None)
        extractor: Extraction capability (built from settings on first use when None)
        store: NoteStore (created under settings.data_dir when None)
        formatter: NarrativeFormatter (deterministic when None)
        run_in_background: Format narratives on a daemon thread

    Returns:
        Flask: Configured app; state lives in app.extensions['service_notes']
    """
    settings = settings or Settings.load()
    store = store or NoteStore(settings.data_dir)
    formatter = formatter or NarrativeFormatter(store)

    app = Flask(__name__)
    app.extensions[EXTENSION_KEY] = {
        'settings': settings,
        'extractor': extractor,
        'store': store,
        'submitter': NoteSubmitter(store, formatter, run_in_background=run_in_background),
        'conversations': {},
        'lock': threading.Lock(),
    }

    def registry():
        return app.extensions[EXTENSION_KEY]

    def get_extractor():
        reg = registry()
        with reg['lock']:
            if reg['extractor'] is None:
                logger.info("Building extractor on first use...")
                reg['extractor'] = build_extractor(reg['settings'])
            return reg['extractor']

    def get_conversation(conversation_id):
        with registry()['lock']:
            return registry()['conversations'].get(conversation_id)

    # ==================== CONVERSATIONS ====================

    @app.route('/api/conversations', methods=['POST'])
    def start_conversation():
        """Start a conversation, optionally from an existing form or record"""
        try:
            data = request.get_json(silent=True) or {}
            engine = ConversationEngine(get_extractor(), initial_fields=_fields_from_payload(data))

            conversation_id = generate_conversation_id()
            with registry()['lock']:
                registry()['conversations'][conversation_id] = {
                    'engine': engine,
                    'lock': threading.Lock(),
                    'task_id': data.get('task_id'),
                }

            logger.info(f"Conversation started: {conversation_id}")
            return jsonify({
                'success': True,
                'conversation_id': conversation_id,
                'conversation': engine.snapshot()
            })

        except Exception as e:
            logger.error(f"Error starting conversation: {e}")
            return _error(str(e), 500)

    @app.route('/api/conversations/<conversation_id>', methods=['GET'])
    def get_conversation_state(conversation_id):
        entry = get_conversation(conversation_id)
        if entry is None:
            return _error('Conversation not found', 404)

        return jsonify({
            'success': True,
            'conversation_id': conversation_id,
            'conversation': entry['engine'].snapshot()
        })

    @app.route('/api/conversations/<conversation_id>/answer', methods=['POST'])
    def answer_conversation(conversation_id):
        """Submit an answer to the current step"""
        entry = get_conversation(conversation_id)
        if entry is None:
            return _error('Conversation not found', 404)

        data = request.get_json(silent=True) or {}
        answer = data.get('answer')
        if not isinstance(answer, str) or not answer.strip():
            return _error('answer is required', 400)

        engine = entry['engine']
        if engine.is_finished:
            return _error('Conversation already finished', 409)

        if not entry['lock'].acquire(blocking=False):
            return _error('Previous answer is still being processed', 409)

        try:
            result = engine.submit_answer(answer)
        except Exception as e:
            logger.error(f"Error processing answer: {e}")
            return _error(str(e), 500)
        finally:
            entry['lock'].release()

        return jsonify({
            'success': True,
            'accepted': result.accepted,
            'advanced': result.advanced,
            'finished': result.finished,
            'error': result.error,
            'messages': [message.to_dict() for message in result.messages],
            'conversation': engine.snapshot()
        })

    @app.route('/api/conversations/<conversation_id>/reset', methods=['POST'])
    def reset_conversation(conversation_id):
        entry = get_conversation(conversation_id)
        if entry is None:
            return _error('Conversation not found', 404)

        data = request.get_json(silent=True) or {}
        entry['engine'].reset(_fields_from_payload(data))

        return jsonify({
            'success': True,
            'conversation': entry['engine'].snapshot()
        })

    @app.route('/api/conversations/<conversation_id>', methods=['DELETE'])
    def abandon_conversation(conversation_id):
        with registry()['lock']:
            entry = registry()['conversations'].pop(conversation_id, None)
        if entry is None:
            return _error('Conversation not found', 404)

        logger.info(f"Conversation abandoned: {conversation_id}")
        return jsonify({'success': True})

    # ==================== PREVIEW ====================

    @app.route('/api/preview', methods=['POST'])
    def preview():
        """Summary, detailed text and facts for a form or record"""
        fields = _fields_from_payload(request.get_json(silent=True))
        if fields is None:
            return _error("Request must contain 'form' or 'fields'", 400)

        return jsonify({
            'success': True,
            'fields': fields.to_dict(),
            'summary': apply_expression_rules(build_summary(fields)),
            'detailed': build_detailed(fields),
            'facts': build_facts(fields)
        })

    # ==================== SUBMISSION ====================

    @app.route('/api/tasks/<task_id>/submit', methods=['POST'])
    def submit_note(task_id):
        """Store the task's note and wait for its narrative"""
        data = request.get_json(silent=True) or {}
        reg = registry()

        conversation_id = data.get('conversation_id')
        if conversation_id:
            entry = get_conversation(conversation_id)
            if entry is None:
                return _error('Conversation not found', 404)
            fields = entry['engine'].fields
        else:
            fields = _fields_from_payload(data)
            if fields is None:
                return _error("Request must contain 'form', 'fields' or 'conversation_id'", 400)

        settings = reg['settings']
        try:
            note_id, narrative = reg['submitter'].submit_and_wait(
                task_id, fields,
                timeout=settings.poll_timeout,
                interval=settings.poll_interval
            )
        except ValidationError as e:
            return _error(str(e), 400)
        except NarrativeTimeoutError as e:
            logger.warning(f"Task {task_id}: {e}")
            return jsonify({
                'success': False,
                'error': str(e),
                'note_id': e.note_id
            }), 504
        except Exception as e:
            logger.error(f"Error submitting note for task {task_id}: {e}")
            return _error(str(e), 500)

        status = reg['store'].get_status(task_id)
        return jsonify({
            'success': True,
            'note_id': note_id,
            'narrative': narrative,
            'status': status.value if status else None
        })

    @app.route('/api/notes/<note_id>/narrative', methods=['GET'])
    def get_narrative(note_id):
        store = registry()['store']
        try:
            task_id = store.task_for_note(note_id)
        except KeyError:
            return _error('Note not found', 404)

        narrative = store.fetch_narrative(note_id)
        status = store.get_status(task_id)
        return jsonify({
            'success': True,
            'note_id': note_id,
            'ready': narrative is not None,
            'narrative': narrative,
            'status': status.value if status else None
        })

    return app


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    settings = Settings.load()

    # Load the model once and share it between extraction and formatting
    hf_client = None
    if settings.extractor is ExtractorKind.LOCAL:
        logger.info("Initializing HuggingFace model (this takes ~30 seconds)...")
        hf_client = build_hf_client(settings)

    store = NoteStore(settings.data_dir)
    app = create_app(
        settings=settings,
        extractor=build_extractor(settings, hf_client),
        store=store,
        formatter=NarrativeFormatter(store, hf_client)
    )

    print("\n" + "="*60)
    print("SERVICE NOTE SYSTEM - API SERVER")
    print("="*60)
    print("\nServer starting on http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(host='0.0.0.0', port=5000)
