# device_agent/core/orchestrator.py
import logging
import time
from typing import Callable, List, Optional, Tuple

from device_agent.agents.model_client import InvokeOutput, UITarsModel
from device_agent.agents.planner import Planner
from device_agent.agents.prompts import get_system_prompt
from device_agent.core.adapters import BaseOperator
from device_agent.core.cancellation import CancellationToken
from device_agent.core.config import AgentConfig
from device_agent.core.errors import (AgentError, CancelledError, CaptureError,
                                      ConfigurationError, TransportError)
from device_agent.core.history import trim_history
from device_agent.core.lifecycle import EVENT_DATA, EVENT_ERROR, LifecycleManager
from device_agent.core.models import (ActionType, ConversationTurn, GUIAgentData,
                                      ParsedAction, Role, RoundState,
                                      ScreenshotContext, ScreenshotOutput,
                                      StatusEnum, Timing)
from device_agent.core.registry import register_builtin_operators, registry
from device_agent.core.retry import (PHASE_EXECUTE, PHASE_MODEL, PHASE_SCREENSHOT,
                                     RetryPolicy, with_retry)
from device_agent.parser.action_parser import ActionParser
from device_agent.utils.image import mark_click_position, screenshot_context
from device_agent.validators.action_validator import ActionValidator

logger = logging.getLogger(__name__)

# model's answer for an action that ends the run
TERMINAL_ACTIONS = {
    ActionType.FINISHED.value: StatusEnum.FINISHED,
    ActionType.CALL_USER.value: StatusEnum.CALL_USER,
    ActionType.ERROR.value: StatusEnum.ERROR,
}


def _timing(start: float, end: Optional[float] = None, cost_ms: Optional[float] = None) -> Timing:
    end = start if end is None else end
    return Timing(start=start, end=end, cost=(end - start) * 1000 if cost_ms is None else cost_ms)


class GUIAgent:
    """
    The agent loop: screenshot -> model -> parse -> execute, once per round,
    until the model finishes, asks for the user, fails, the round limit is
    hit, or the caller cancels.

    One instance holds the state of one run (history, retry budgets, observer
    channel, cancellation token). The operator, model client and parser are
    shared collaborators and never see the history.
    """

    def __init__(
        self,
        operator: BaseOperator,
        model: UITarsModel,
        config: Optional[AgentConfig] = None,
        cancellation: Optional[CancellationToken] = None,
        on_data: Optional[Callable[[GUIAgentData], None]] = None,
        on_error: Optional[Callable[[AgentError], None]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        parser: Optional[ActionParser] = None,
        validator: Optional[ActionValidator] = None,
        planner: Optional[Planner] = None,
        system_prompt: Optional[str] = None,
    ):
        self.config = config or AgentConfig()
        self.operator = operator
        self.model = model
        self.cancellation = cancellation or CancellationToken()
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config.retry)
        self.parser = parser or ActionParser(self.config.factors)
        self.validator = validator or ActionValidator()
        self.system_prompt = system_prompt or get_system_prompt(operator.manual(), self.config.language)

        if planner is None and self.config.plan_before_run:
            planner = Planner(model, language=self.config.language)
        self.planner = planner

        self.lifecycle = LifecycleManager()
        if on_data:
            self.lifecycle.register(EVENT_DATA, on_data)
        if on_error:
            self.lifecycle.register(EVENT_ERROR, on_error)

        self.instruction = ""
        self.conversations: List[ConversationTurn] = []
        self.budgets = self.retry_policy.new_budgets()
        self.round_state = RoundState(index=0, status=StatusEnum.INIT)
        self._emitted = 0

    @classmethod
    def from_config(cls, config: AgentConfig, **kwargs) -> "GUIAgent":
        """Build the operator named in the config through the registry and a model client."""
        register_builtin_operators()
        operator_kwargs = {"device_id": config.device_id} if config.operator == "adb" else {}
        operator = registry.create_operator(config.operator, **operator_kwargs)
        return cls(operator, UITarsModel(config.model), config=config, **kwargs)

    @property
    def history(self) -> List[ConversationTurn]:
        return list(self.conversations)

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------
    def run(self, instruction: str) -> RoundState:
        logger.info("[Orchestrator] run: %s", instruction)
        self.instruction = instruction
        self.conversations = [ConversationTurn(from_=Role.HUMAN, value=instruction, timing=_timing(time.time()))]
        self.budgets = self.retry_policy.new_budgets()
        self.round_state = RoundState(index=0, status=StatusEnum.RUNNING)
        self._emitted = 0

        try:
            self._plan()
        except CancelledError:
            return self._terminate(0, StatusEnum.USER_ABORTED)

        return self._loop()

    def _plan(self):
        if self.planner is None:
            return
        try:
            steps = self.cancellation.run(self.planner.plan, self.instruction)
        except CancelledError:
            raise
        except Exception as e:
            logger.warning("[Orchestrator] planning failed, running without a plan: %s", e)
            return
        if steps:
            plan_text = "\n".join(f"- {s}" for s in steps)
            first = self.conversations[0]
            self.conversations[0] = first.model_copy(update={"value": f"{first.value}\n\nPlan:\n{plan_text}"})

    def _loop(self) -> RoundState:
        index = 0
        interval = self.config.loop_interval_ms / 1000

        while True:
            if self.cancellation.cancelled:
                return self._terminate(index, StatusEnum.USER_ABORTED)
            if index >= self.config.max_loop_count:
                return self._terminate(
                    index, StatusEnum.MAX_LOOP_EXCEEDED,
                    f"reached the maximum of {self.config.max_loop_count} rounds",
                )

            self.round_state = RoundState(index=index, status=StatusEnum.RUNNING)
            try:
                status, message, error = self._run_round(index)
            except CancelledError:
                return self._terminate(index, StatusEnum.USER_ABORTED)
            except (CaptureError, TransportError) as e:
                return self._fail(index, e)

            if error is not None:
                return self._fail(index, error)
            if status != StatusEnum.RUNNING:
                return self._terminate(index, status, message)

            self.round_state = RoundState(index=index, status=StatusEnum.RUNNING)
            self._emit_data(self.round_state)

            index += 1
            if interval > 0:
                self.cancellation.wait(interval)

    # ------------------------------------------------------------------
    # one round
    # ------------------------------------------------------------------
    def _run_round(self, index: int) -> Tuple[StatusEnum, Optional[str], Optional[AgentError]]:
        shot, context = with_retry(
            self.budgets[PHASE_SCREENSHOT], self._capture, self.cancellation, self.retry_policy.delay_seconds,
        )
        now = time.time()
        self.conversations.append(ConversationTurn(
            from_=Role.HUMAN,
            value="<image>",
            screenshot_base64=shot.base64,
            screenshot_context=context,
            timing=_timing(now),
        ))

        trimmed, images = trim_history(self.conversations, self.config.max_history_images)
        start = time.time()
        output = with_retry(
            self.budgets[PHASE_MODEL], lambda: self._invoke(trimmed, images),
            self.cancellation, self.retry_policy.delay_seconds,
        )
        end = time.time()

        actions = self.parser.parse(output.prediction, context)
        if not actions:
            logger.warning("[Orchestrator] round %d: no executable action in prediction", index)
        elif actions[0].thought:
            logger.info("[Orchestrator] round %d thought: %s", index, actions[0].thought)

        status, message, error = StatusEnum.RUNNING, None, None
        for action in actions:
            if not action.executable:
                logger.warning("[Orchestrator] round %d: skipping %s: %s", index, action.raw_type or action.action_type, action.parse_error)
                continue
            terminal = TERMINAL_ACTIONS.get(action.action_type)
            if terminal is not None:
                status = terminal
                message = action.error if terminal == StatusEnum.ERROR else None
                break
            try:
                self._execute(action, context)
            except CancelledError:
                status = StatusEnum.USER_ABORTED
                break
            except ConfigurationError as e:
                status, message, error = StatusEnum.ERROR, str(e), e
                break

        self.conversations.append(ConversationTurn(
            from_=Role.AGENT,
            value=output.prediction,
            predictions=actions,
            screenshot_context=context,
            timing=_timing(start, end, output.cost_ms),
            screenshot_with_marker=self._mark(shot, context, actions),
        ))
        return status, message, error

    def _capture(self) -> Tuple[ScreenshotOutput, ScreenshotContext]:
        try:
            shot = self.cancellation.run(self.operator.screenshot)
            context = screenshot_context(shot.base64, shot.scale_factor)
        except (CaptureError, CancelledError):
            raise
        except Exception as e:
            raise CaptureError(f"screenshot unusable: {e}") from e
        logger.info("[Orchestrator] screenshot %dx%d scale=%s",
                    context.pixel_width, context.pixel_height, context.scale_factor)
        return shot, context

    def _invoke(self, trimmed: List[ConversationTurn], images: List[str]) -> InvokeOutput:
        try:
            return self.cancellation.run(self.model.invoke, trimmed, images, self.system_prompt)
        except (CancelledError, TransportError):
            raise
        except Exception as e:
            raise TransportError(f"model call failed: {e}") from e

    def _execute(self, action: ParsedAction, context: ScreenshotContext) -> bool:
        report = self.validator.validate(action, context)
        if report["validation_status"] != "pass":
            logger.warning("[Orchestrator] skipping %s: %s", action.action_type, report["reason"])
            return False

        budget = self.budgets[PHASE_EXECUTE]
        try:
            with_retry(budget, lambda: self.cancellation.run(self.operator.execute, action),
                       self.cancellation, self.retry_policy.delay_seconds)
            return True
        except (CancelledError, ConfigurationError):
            raise
        except Exception as e:
            # device actions are best effort; the next screenshot shows what happened
            logger.error("[Orchestrator] %s failed after %d attempt(s): %s",
                         action.action_type, budget.attempts_used, e)
            return False

    def _mark(self, shot: ScreenshotOutput, context: ScreenshotContext,
              actions: List[ParsedAction]) -> Optional[str]:
        if not self.config.set_of_marks or not any(a.start for a in actions):
            return None
        try:
            return mark_click_position(shot.base64, context, actions)
        except Exception as e:
            logger.error("[markClickPosition error]: %s", e)
            return None

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------
    def _emit_data(self, state: RoundState):
        delta = self.conversations[self._emitted:]
        self._emitted = len(self.conversations)
        self.lifecycle.emit(EVENT_DATA, GUIAgentData(
            status=state.status,
            round_index=state.index,
            instruction=self.instruction,
            conversations=delta,
            error_message=state.error_message,
        ))

    def _terminate(self, index: int, status: StatusEnum, message: Optional[str] = None) -> RoundState:
        self.round_state = RoundState(index=index, status=status, error_message=message)
        logger.info("[Orchestrator] finished with status=%s after %d round(s)%s",
                    status.value, index, f": {message}" if message else "")
        self._emit_data(self.round_state)
        return self.round_state

    def _fail(self, index: int, error: AgentError) -> RoundState:
        logger.error("[Orchestrator] run failed in round %d: %s", index, error)
        self.lifecycle.emit(EVENT_ERROR, error)
        return self._terminate(index, StatusEnum.ERROR, str(error) or error.__class__.__name__)
