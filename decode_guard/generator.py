"""
Generation loop - drive a DecodingController with a model backend.

This is the caller-side loop around the controller:
    1. Encode the prompt (an empty prompt starts from the BOS token) and create
       a fresh controller for the sequence
    2. Bind the constraint after the prompt (anchor = prompt length)
    3. Score -> sample_next -> check stop conditions, until one fires. A
       constraint that is already terminal or satisfied when bound ends
       generation before the first draw
    4. Decode and return the generated text with stop metadata

Stop conditions, in the order they are checked after each token:
    - EOS token emitted
    - constraint automaton has no legal continuation, or max_length reached
    - constraint satisfied (when stop_on_constraint_satisfaction is set)
    - decoded text ends with one of the stop sequences

Usage:
    ```python
    from decode_guard import ConstrainedGenerator, GenerationConfig
    from decode_guard.backends import BackendFactory

    backend = BackendFactory.create("gpt2", device="cpu")
    generator = ConstrainedGenerator(backend)

    result = generator.generate(
        "The answer is",
        GenerationConfig(max_length=20, temperature=0.0, stop_sequences=["."]),
    )
    print(result.text, result.stop_reason)

    for piece in generator.generate_stream("Once upon a time", max_length=30):
        print(piece, end="", flush=True)
    ```
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from decode_guard.backends.base import Backend
from decode_guard.config import GenerationConfig
from decode_guard.decoding.controller import DecodingController
from decode_guard.decoding.stopping import StopReason, find_stop_sequence
from decode_guard.errors import ConfigurationError
from decode_guard.sampling import TorchSampler

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """
    Result of a generation call.

    Attributes:
        text: Generated text (prompt included if include_prompt was set)
        token_ids: Generated token ids, prompt excluded
        stop_reason: Why generation ended
        constraint_satisfied: Constraint satisfaction at the end, None if unconstrained
        tokens_generated: Number of generated tokens
        latency_ms: Wall-clock generation time in milliseconds
        stop_sequence: Stop sequence that ended generation, if any
    """
    text: str
    token_ids: List[int]
    stop_reason: StopReason
    constraint_satisfied: Optional[bool]
    tokens_generated: int
    latency_ms: float
    stop_sequence: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'token_ids': list(self.token_ids),
            'stop_reason': self.stop_reason.value,
            'constraint_satisfied': self.constraint_satisfied,
            'tokens_generated': self.tokens_generated,
            'latency_ms': self.latency_ms,
            'stop_sequence': self.stop_sequence,
        }


@dataclass
class _Step:
    token_id: Optional[int]
    text: str
    stop_reason: Optional[StopReason]
    stop_sequence: Optional[str] = None


class ConstrainedGenerator:
    """
    Run constrained generation against a model backend.

    Each call builds its own DecodingController, so a generator can be used
    for many sequential prompts. The constraint automaton in the config is
    shared by all of them.

    Attributes:
        backend: Model backend providing scores and tokenizer
        config: Default GenerationConfig
    """

    def __init__(self, backend: Backend, config: Optional[GenerationConfig] = None):
        self.backend = backend
        self.config = config or GenerationConfig()

        logger.info(f"Initialized ConstrainedGenerator with {backend!r}")

    def _resolve_config(self, config: Optional[GenerationConfig], overrides: Dict[str, Any]) -> GenerationConfig:
        config = config or self.config
        if overrides:
            config = config.with_options(**overrides)
        return config

    def create_controller(self, prompt_ids: Sequence[int], config: GenerationConfig) -> DecodingController:
        """
        Build the controller for one sequence.

        History starts with the prompt, and the constraint is bound afterwards
        so it only governs generated tokens.
        """
        sampler = TorchSampler(
            temperature=config.temperature,
            top_p=config.top_p,
            seed=config.seed,
        )
        controller = DecodingController(
            sampler=sampler,
            repetition_penalty=config.repetition_penalty,
            repetition_penalty_window=config.repetition_penalty_last_n,
        )

        eos_token_id = getattr(self.backend.get_tokenizer(), 'eos_token_id', None)
        if eos_token_id is not None:
            controller.set_eos_token(eos_token_id)

        controller.set_history(prompt_ids)

        if config.constraint is not None:
            controller.bind_constraint(config.constraint)

        return controller

    def generate(
        self,
        prompt: str,
        config: Optional[GenerationConfig] = None,
        **overrides
    ) -> GenerationResult:
        """
        Generate a completion for ``prompt``.

        Args:
            prompt: Input prompt
            config: GenerationConfig (defaults to the generator's config)
            **overrides: Field overrides applied on top of the config

        Returns:
            GenerationResult: Text, token ids and stop metadata

        Example:
            ```python
            result = generator.generate("Name:", max_length=10, temperature=0.0)
            if result.stop_reason is StopReason.CONSTRAINT:
                print("Constraint finished the output")
            ```
        """
        config = self._resolve_config(config, overrides)
        start_time = time.time()

        controller, prompt_length, steps = self._run(prompt, config)

        last: Optional[_Step] = None
        for step in steps:
            last = step

        generated = list(controller.history()[prompt_length:])
        text = last.text if last else ""
        if config.include_prompt:
            text = prompt + text

        latency_ms = (time.time() - start_time) * 1000
        result = GenerationResult(
            text=text,
            token_ids=generated,
            stop_reason=last.stop_reason if last else StopReason.MAX_LENGTH,
            constraint_satisfied=(
                controller.is_constraint_satisfied() if config.constraint is not None else None
            ),
            tokens_generated=len(generated),
            latency_ms=latency_ms,
            stop_sequence=last.stop_sequence if last else None,
        )

        logger.info(
            f"Generated {result.tokens_generated} tokens in {latency_ms:.0f}ms "
            f"(stop_reason={result.stop_reason.value})"
        )

        return result

    def generate_stream(
        self,
        prompt: str,
        config: Optional[GenerationConfig] = None,
        **overrides
    ) -> Iterator[str]:
        """
        Yield decoded text increments as tokens are generated.

        With include_prompt set, the prompt is yielded first.
        """
        config = self._resolve_config(config, overrides)
        _, _, steps = self._run(prompt, config)

        if config.include_prompt:
            yield prompt

        previous = ""
        for step in steps:
            if step.text.startswith(previous):
                delta = step.text[len(previous):]
            else:
                delta = step.text
            previous = step.text

            if delta:
                yield delta

    def _run(self, prompt: str, config: GenerationConfig) -> Tuple[DecodingController, int, Iterator[_Step]]:
        tokenizer = self.backend.get_tokenizer()
        prompt_ids = list(tokenizer.encode(prompt))

        if not prompt_ids:
            bos_token_id = getattr(tokenizer, "bos_token_id", None)
            if bos_token_id is None:
                raise ConfigurationError(
                    f"Prompt {prompt!r} encodes to no tokens and the tokenizer has no BOS token"
                )
            logger.debug(f"Empty prompt, starting from BOS token {bos_token_id}")
            prompt_ids = [bos_token_id]

        controller = self.create_controller(prompt_ids, config)
        self.backend.reset()

        return controller, len(prompt_ids), self._steps(controller, tokenizer, len(prompt_ids), config)

    def _steps(
        self,
        controller: DecodingController,
        tokenizer: Any,
        prompt_length: int,
        config: GenerationConfig,
    ) -> Iterator[_Step]:
        max_total = prompt_length + config.max_length
        generated: List[int] = []

        stop_reason = self._check_constraint_before_start(controller, config)
        if stop_reason is not None:
            yield _Step(None, "", stop_reason)
            return

        while True:
            scores = self.backend.next_token_scores(controller.history())
            token_id = controller.sample_next(scores)
            generated.append(token_id)

            text = tokenizer.decode(generated, skip_special_tokens=True)

            if config.debug_tokens:
                piece = tokenizer.decode([token_id], skip_special_tokens=False)
                logger.debug(f"[{len(generated)}] token {token_id} -> {piece!r}")

            stop_reason, stop_sequence = self._check_stop(controller, token_id, max_total, text, config)
            yield _Step(token_id, text, stop_reason, stop_sequence)

            if stop_reason is not None:
                return

    def _check_stop(
        self,
        controller: DecodingController,
        token_id: int,
        max_total: int,
        text: str,
        config: GenerationConfig,
    ) -> Tuple[Optional[StopReason], Optional[str]]:
        if controller.should_stop(token_id, max_total):
            if controller.eos_token_id is not None and token_id == controller.eos_token_id:
                return StopReason.EOS, None
            if len(controller.history()) >= max_total:
                return StopReason.MAX_LENGTH, None
            return StopReason.CONSTRAINT, None

        if self._constraint_satisfied(controller, config):
            logger.debug("Stopping: constraint satisfied")
            return StopReason.CONSTRAINT, None

        stop_sequence = find_stop_sequence(text, config.stop_sequences)
        if stop_sequence is not None:
            logger.debug(f"Stopping: matched stop sequence {stop_sequence!r}")
            return StopReason.STOP_SEQUENCE, stop_sequence

        return None, None

    def _check_constraint_before_start(
        self,
        controller: DecodingController,
        config: GenerationConfig,
    ) -> Optional[StopReason]:
        """
        Stop before the first draw when the freshly bound constraint is already
        terminal, or already satisfied.
        """
        if controller.is_constraint_terminal():
            logger.debug(
                f"Stopping before first token: constraint state "
                f"{controller.constraint_state!r} is terminal"
            )
            return StopReason.CONSTRAINT

        if self._constraint_satisfied(controller, config):
            logger.debug("Stopping before first token: constraint satisfied")
            return StopReason.CONSTRAINT

        return None

    def _constraint_satisfied(self, controller: DecodingController, config: GenerationConfig) -> bool:
        if config.constraint is None or not config.stop_on_constraint_satisfaction:
            return False
        if config.stop_on_match:
            return controller.is_constraint_satisfied_stop_on_match()
        return controller.is_constraint_satisfied()

    def get_info(self) -> Dict[str, Any]:
        return self.backend.get_model_info()

    def __repr__(self) -> str:
        return f"ConstrainedGenerator(backend={self.backend!r})"
