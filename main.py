"""
Console Harness for the Conversation Engine

Simple console loop to walk through the service note interview with the
configured extractor, then optionally submit the result for a task.
"""

import logging
import sys

from service_notes.config import ExtractorKind, Settings
from service_notes.core.conversation_engine import ConversationEngine
from service_notes.core.narrative_builder import build_detailed
from service_notes.core.note_submission import NarrativeFormatter, NoteSubmitter
from service_notes.errors import NarrativeTimeoutError, ValidationError
from service_notes.persistence import NoteStore
from service_notes.utils.helpers import build_extractor, build_hf_client

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = ('quit', 'exit', 'stop')
RESET_COMMAND = 'reset'


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def print_messages(messages):
    for message in messages:
        label = "System" if message.sender == "system" else "You"
        print(f"\n{label}: {message.text}")


def submit_note(engine, settings, hf_client):
    """Ask for a task id and submit the interview result"""
    task_id = input("\nTask ID to submit for (blank to skip): ").strip()
    if not task_id:
        return

    store = NoteStore(settings.data_dir)
    submitter = NoteSubmitter(store, NarrativeFormatter(store, hf_client))

    try:
        note_id, narrative = submitter.submit_and_wait(
            task_id, engine.fields,
            timeout=settings.poll_timeout,
            interval=settings.poll_interval
        )
    except ValidationError as e:
        print(f"\nNot submitted: {e}")
        return
    except NarrativeTimeoutError as e:
        print(f"\n{e}")
        return

    print(f"\nNote {note_id} stored for task {task_id}")
    print_separator("-")
    print(narrative)
    print_separator("-")


def main():
    """Run console interview"""
    print_separator()
    print("SERVICE NOTE INTERVIEW - CONSOLE")
    print_separator()

    try:
        settings = Settings.load()

        hf_client = None
        if settings.extractor is ExtractorKind.LOCAL:
            print("\nLoading model (this may take 30 seconds)...")
            hf_client = build_hf_client(settings)

        engine = ConversationEngine(build_extractor(settings, hf_client))
        print("\nModules initialized successfully!")

    except Exception as e:
        print(f"\nFailed to initialize: {e}")
        import traceback
        traceback.print_exc()
        return 1

    print_separator()
    print(f"Type {', '.join(EXIT_COMMANDS)} to end early, '{RESET_COMMAND}' to start over\n")
    print_messages(engine.transcript)

    while not engine.is_finished:
        try:
            current, total = engine.progress
            user_input = input(f"\n[{current}/{total}] > ").strip()

            if not user_input:
                print("Please enter a response.")
                continue

            if user_input.lower() in EXIT_COMMANDS:
                print("\nInterview ended early by user")
                break

            if user_input.lower() == RESET_COMMAND:
                engine.reset()
                print_messages(engine.transcript)
                continue

            result = engine.submit_answer(user_input)
            print_messages(m for m in result.messages if m.sender == "system")

            if result.advanced and engine.last_summary:
                print(f"\n(Summary) {engine.last_summary}")

        except KeyboardInterrupt:
            print("\n\nInterview interrupted by user (Ctrl+C)")
            break

    print_separator()
    print("DETAILED RECORD")
    print_separator()
    print(build_detailed(engine.fields))

    if engine.is_finished:
        try:
            submit_note(engine, settings, hf_client)
        except KeyboardInterrupt:
            pass

    print_separator()
    print("Console session complete")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
