"""
个性化问答状态机

awaiting_first_question -> awaiting_answer -> (continuing | completing) -> complete

- 最多提问 max_questions 次（按助手的 question 消息计数）
- 模型回复优先按 {"done": bool, "question": str} 解析，解析失败时匹配结束语
- 进入 complete 时写入一条 recommendation 消息，并且只触发一次 on_complete
- 处理中（busy）或已完成时，新的回答直接忽略
"""
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from moodtrip.errors import ParseFailure, ProviderUnavailable
from moodtrip.models import ConversationTurn, DialogueSession, Questionnaire, Role, TurnKind
from moodtrip.services.model_gateway import ModelGateway
from moodtrip.services.parsing import extract_json_object
from moodtrip.services.session_store import SessionStore

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 3
FALLBACK_FIRST_QUESTION = "您希望这次旅行是放松还是探索？"
COMPLETION_MESSAGE = "信息已收集完整，正在为您生成推荐..."
TERMINATION_PHRASES = ("信息已收集完整", "可以开始推荐")

FIRST_QUESTION_PROMPT = """作为旅行规划助手，请根据用户的情绪和已收集的信息，生成一个个性化问题来了解更多需求。问题应该：
1. 与用户的情绪关键词相关
2. 帮助更好地推荐景点
3. 自然、友好

只返回问题内容，不要其他解释。

{context}

问题："""

NEXT_QUESTION_PROMPT = """根据以下对话历史，生成下一个个性化问题。如果已经收集足够信息，可以结束对话。

对话历史：
{history}

请以JSON格式返回：
{{"done": false, "question": "下一个问题"}}
如果信息已足够，返回 {{"done": true, "question": ""}}。只返回JSON，不要其他解释。"""


class DialogueState(str, Enum):
    """问答状态"""
    AWAITING_FIRST_QUESTION = "awaiting_first_question"
    AWAITING_ANSWER = "awaiting_answer"
    CONTINUING = "continuing"
    COMPLETING = "completing"
    COMPLETE = "complete"


OnComplete = Callable[["DialogueEngine"], Awaitable[None]]


def format_history(turns: List[ConversationTurn]) -> str:
    return "\n".join(
        f"{'助手' if turn.role == Role.ASSISTANT else '用户'}: {turn.content}"
        for turn in turns
    )


def parse_next_question(reply: str) -> Optional[str]:
    """
    解析模型的下一步回复

    Returns:
        下一个问题；None 表示对话应结束
    """
    try:
        data = extract_json_object(reply)
    except ParseFailure:
        data = None

    if isinstance(data, dict) and "done" in data:
        question = str(data.get("question") or "").strip()
        if data.get("done") or not question:
            return None
        return question

    # 非结构化回复：匹配结束语
    content = reply.strip()
    if not content or any(phrase in content for phrase in TERMINATION_PHRASES):
        return None
    return content


class DialogueEngine:
    """单个会话的问答流程"""

    def __init__(
        self,
        session_id: str,
        gateway: ModelGateway,
        store: SessionStore,
        max_questions: int = MAX_QUESTIONS,
        on_complete: Optional[OnComplete] = None
    ):
        self.session_id = session_id
        self.gateway = gateway
        self.store = store
        self.max_questions = max_questions
        self.on_complete = on_complete

        self.state = DialogueState.AWAITING_FIRST_QUESTION
        self.turns: List[ConversationTurn] = []
        self.busy = False
        self._completion_fired = False

    @property
    def complete(self) -> bool:
        return self.state == DialogueState.COMPLETE

    @property
    def question_count(self) -> int:
        return sum(1 for turn in self.turns if turn.role == Role.ASSISTANT and turn.kind == TurnKind.QUESTION)

    @property
    def session(self) -> DialogueSession:
        return DialogueSession(session_id=self.session_id, turns=list(self.turns), complete=self.complete)

    async def init(self, keywords: List[str], questionnaire: Questionnaire) -> None:
        """加载历史消息；没有历史时生成第一个问题"""
        self.turns = await self.store.load(self.session_id)

        if self.turns:
            if self.turns[-1].kind == TurnKind.RECOMMENDATION:
                # 已完成的会话，不再触发推荐
                self.state = DialogueState.COMPLETE
                self._completion_fired = True
            else:
                self.state = DialogueState.AWAITING_ANSWER
            logger.info(f"💬 恢复会话 {self.session_id}: {len(self.turns)} 条消息, 状态 {self.state.value}")
            return

        self.state = DialogueState.AWAITING_FIRST_QUESTION
        self.busy = True
        try:
            question = await self._first_question(keywords, questionnaire)
            await self._add_turn(Role.ASSISTANT, question, TurnKind.QUESTION)
            self.state = DialogueState.AWAITING_ANSWER
        finally:
            self.busy = False

    async def _first_question(self, keywords: List[str], questionnaire: Questionnaire) -> str:
        context = (
            f"用户想要旅行的情绪关键词：{'、'.join(keywords)}\n"
            f"已收集的基础信息：\n"
            f"- 出行日期：{questionnaire.travel_date.isoformat()}\n"
            f"- 出行时间：{questionnaire.travel_time.label}\n"
            f"- 人数：{questionnaire.traveler_count}\n"
            f"- 出发地：{questionnaire.departure_location}"
        )
        try:
            question = await self.gateway.complete(FIRST_QUESTION_PROMPT.format(context=context))
        except ProviderUnavailable as e:
            logger.warning(f"⚠️ 生成第一个问题失败，使用默认问题: {e}")
            return FALLBACK_FIRST_QUESTION
        return question.strip() or FALLBACK_FIRST_QUESTION

    async def submit_answer(self, text: str) -> bool:
        """
        提交回答

        Returns:
            是否接受了这次回答（处理中、已完成或空回答返回 False）
        """
        if self.busy or self.complete or self.state != DialogueState.AWAITING_ANSWER:
            logger.info(f"   忽略回答 (busy={self.busy}, state={self.state.value})")
            return False
        if not text or not text.strip():
            return False

        self.busy = True
        try:
            await self._add_turn(Role.USER, text.strip(), TurnKind.ANSWER)

            if self.question_count >= self.max_questions:
                await self._complete()
                return True

            self.state = DialogueState.CONTINUING
            question = await self._next_question()
            if self.complete:
                # 等待期间已被 skip / force_complete 结束，丢弃回复
                return True
            if question is None:
                await self._complete()
            else:
                await self._add_turn(Role.ASSISTANT, question, TurnKind.QUESTION)
                self.state = DialogueState.AWAITING_ANSWER
        except Exception:
            # 写入失败时回到可重新回答的状态
            if self.state == DialogueState.CONTINUING:
                self.state = DialogueState.AWAITING_ANSWER
            raise
        finally:
            self.busy = False
        return True

    async def _next_question(self) -> Optional[str]:
        prompt = NEXT_QUESTION_PROMPT.format(history=format_history(self.turns))
        try:
            reply = await self.gateway.complete(prompt)
        except ProviderUnavailable as e:
            logger.warning(f"⚠️ 生成下一个问题失败，结束问答: {e}")
            return None
        return parse_next_question(reply)

    async def skip(self) -> None:
        """跳过剩余问题"""
        await self._complete()

    async def force_complete(self) -> None:
        """立即结束问答"""
        await self._complete()

    async def _complete(self) -> None:
        if self.complete or self.state == DialogueState.COMPLETING:
            return
        previous = self.state
        self.state = DialogueState.COMPLETING
        try:
            await self._add_turn(Role.ASSISTANT, COMPLETION_MESSAGE, TurnKind.RECOMMENDATION)
        except Exception:
            self.state = previous
            raise
        self.state = DialogueState.COMPLETE
        logger.info(f"✅ 会话 {self.session_id} 问答完成，共 {self.question_count} 个问题")

        if self.on_complete and not self._completion_fired:
            self._completion_fired = True
            await self.on_complete(self)

    async def _add_turn(self, role: Role, content: str, kind: TurnKind) -> None:
        """先持久化，成功后再加入内存中的消息列表"""
        turn = ConversationTurn(role=role, content=content, kind=kind)
        await self.store.append(self.session_id, turn)
        self.turns.append(turn)

    def additional_answers(self) -> Dict[str, str]:
        """问题 -> 回答"""
        answers = {}
        pending_question = None
        for turn in self.turns:
            if turn.role == Role.ASSISTANT and turn.kind == TurnKind.QUESTION:
                pending_question = turn.content
            elif turn.role == Role.USER and pending_question is not None:
                answers[pending_question] = turn.content
                pending_question = None
        return answers
