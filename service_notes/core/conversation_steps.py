"""
Interview steps for the conversational service note.

Fixed, linear order: the sequence alone determines the interview, there
is no branching.
"""

from enum import Enum
from typing import Optional, Tuple

from service_notes.contracts import ConversationStep


class StepId(str, Enum):
    """Interview step identifiers, in interview order"""
    DESTINATION = "destination"
    CONDITION = "condition"
    TOILET = "toilet"
    MOOD = "mood"
    MEAL = "meal"
    WATER = "water"
    MEDICINE = "medicine"
    FAMILY = "family"
    MEMO = "memo"


STEP_IDS = frozenset(step.value for step in StepId)

SERVICE_NOTE_STEPS: Tuple[ConversationStep, ...] = (
    ConversationStep(
        id=StepId.DESTINATION.value,
        prompt='行き先を教えてください。',
        hint='例: 自宅から〇〇園まで など',
    ),
    ConversationStep(
        id=StepId.CONDITION.value,
        prompt='その時の状態は落ち着いていましたか？',
        hint='落ち着き/不穏/発作の有無など',
    ),
    ConversationStep(
        id=StepId.TOILET.value,
        prompt='トイレには行きましたか？排尿・排便はありましたか？',
        hint='排尿・排便の有無、介助内容',
    ),
    ConversationStep(
        id=StepId.MOOD.value,
        prompt='気分や表情はどうでしたか？',
        hint='晴れやか / 少し不安など簡潔に',
    ),
    ConversationStep(
        id=StepId.MEAL.value,
        prompt='食事はどのくらい摂りましたか？',
        hint='完食 / 半分 / ほとんどなし など',
    ),
    ConversationStep(
        id=StepId.WATER.value,
        prompt='水分はどのくらい摂りましたか？',
        hint='十分 / やや不足 など',
    ),
    ConversationStep(
        id=StepId.MEDICINE.value,
        prompt='お薬は内服できましたか？',
        hint='服薬できた / 忘れた / 拒否 など',
    ),
    ConversationStep(
        id=StepId.FAMILY.value,
        prompt='ご家族や他職員との交流はありましたか？',
        hint='会話や対応の様子があれば',
    ),
    ConversationStep(
        id=StepId.MEMO.value,
        prompt='その他、気になったことがあれば教えてください。',
        hint='短くメモしたい内容があれば自由に',
    ),
)


def format_prompt(step: Optional[ConversationStep]) -> str:
    """Prompt text with the hint on a second line"""
    if step is None:
        return ''
    return f"{step.prompt}\n{step.hint}" if step.hint else step.prompt
