"""
HuggingFace Client - Model loading and inference wrapper

Responsibilities:
- Load an instruction-tuned model, optionally with 4-bit quantization
- Render system + user prompts with the tokenizer chat template
- Generate text completions
- Generate JSON-formatted completions with repair
- Handle CUDA errors and log GPU memory

Design principles:
- Dependency injection (no singleton, callers own the instance)
- Fail fast on critical errors (CUDA OOM, model load)
- Model-agnostic callers: formatting lives here, not in the extractors
"""

import torch
import time
import logging
from typing import Optional, Dict, Any, Union
from transformers import (
    AutoModelForCausalLM,
    AutoTokenizer,
    BitsAndBytesConfig
)

logger = logging.getLogger(__name__)

DEVICE_CUDA = "cuda"
DEVICE_CPU = "cpu"
DEVICE_MAP_AUTO = "auto"

# Japanese-capable instruct model with a chat template
DEFAULT_MODEL = "Qwen/Qwen2.5-7B-Instruct"


class HuggingFaceClient:
    """Wrapper for HuggingFace model inference"""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        load_in_4bit: bool = True,
        device: str = DEVICE_CUDA
    ) -> None:
        """
        Initialize model and tokenizer

        Args:
            model_name: HuggingFace model identifier
            load_in_4bit: Use 4-bit quantization (saves VRAM, CUDA only)
            device: Device to use ("cuda" or "cpu")

        Raises:
            RuntimeError: If CUDA requested but not available
            Exception: If model loading fails
        """
        self.model_name = model_name
        self.device = device
        self.model = None
        self.tokenizer = None

        if device == DEVICE_CUDA and not torch.cuda.is_available():
            raise RuntimeError("CUDA requested but not available. Check nvidia-smi.")

        logger.info(f"Loading model: {model_name}")
        logger.info(f"4-bit quantization: {load_in_4bit}")
        logger.info(f"Device: {device}")

        quantization_config = None
        if load_in_4bit and device == DEVICE_CUDA:
            quantization_config = BitsAndBytesConfig(
                load_in_4bit=True,
                bnb_4bit_quant_type="nf4",
                bnb_4bit_compute_dtype=torch.bfloat16,
                bnb_4bit_use_double_quant=True
            )
            logger.info("Using NF4 quantization with bfloat16 compute")

        try:
            self.tokenizer = AutoTokenizer.from_pretrained(model_name)

            if self.tokenizer.pad_token is None:
                if self.tokenizer.eos_token is not None:
                    self.tokenizer.pad_token = self.tokenizer.eos_token
                    logger.info("Set pad_token to eos_token")
                else:
                    self.tokenizer.add_special_tokens({'pad_token': '[PAD]'})
                    logger.warning("Added new [PAD] token as pad_token")

            logger.info("Tokenizer loaded successfully")

        except Exception as e:
            logger.error(f"Failed to load tokenizer: {e}")
            raise

        try:
            self.model = AutoModelForCausalLM.from_pretrained(
                model_name,
                quantization_config=quantization_config,
                device_map=DEVICE_MAP_AUTO if device == DEVICE_CUDA else None,
                torch_dtype=torch.bfloat16 if device == DEVICE_CUDA else torch.float32
            )
            logger.info("Model loaded successfully")

            if device == DEVICE_CUDA:
                self._log_cuda_memory("after model load")

        except torch.cuda.OutOfMemoryError:
            logger.error("CUDA Out of Memory during model loading")
            logger.error("Try: 1) Close other GPU applications, 2) Use a smaller model, 3) Use CPU")
            raise
        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise

        self.model.eval()
        logger.info("HuggingFace client initialized successfully")

    def _log_cuda_memory(self, stage: str) -> None:
        if self.device == DEVICE_CUDA and torch.cuda.is_available():
            allocated = torch.cuda.memory_allocated() / 1e9
            reserved = torch.cuda.memory_reserved() / 1e9
            logger.info(
                f"GPU memory {stage}: "
                f"{allocated:.2f}GB allocated, {reserved:.2f}GB reserved"
            )

    def is_loaded(self) -> bool:
        """True if model and tokenizer are loaded"""
        return self.model is not None and self.tokenizer is not None

    def _render_prompt(self, prompt: str, system_prompt: Optional[str]) -> str:
        """Apply the tokenizer chat template, or plain concatenation without one"""
        if getattr(self.tokenizer, 'chat_template', None):
            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            return self.tokenizer.apply_chat_template(
                messages,
                tokenize=False,
                add_generation_prompt=True
            )

        logger.debug(f"No chat template for {self.model_name}, using plain prompt")
        return f"{system_prompt}\n\n{prompt}" if system_prompt else prompt

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 256,
        temperature: float = 0.3,
        return_diagnostics: bool = False
    ) -> Union[str, Dict[str, Any]]:
        """
        Generate text completion

        Args:
            prompt: User prompt (plain text)
            system_prompt: Optional system instructions
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic)
            return_diagnostics: Include token counts and timing

        Returns:
            str: Generated text (if return_diagnostics=False)
            dict: {'text': str, 'diagnostics': {...}} (if return_diagnostics=True)

        Raises:
            RuntimeError: If model not loaded
            torch.cuda.OutOfMemoryError: If GPU runs out of memory
        """
        if not self.is_loaded():
            raise RuntimeError("Model not loaded")

        start_time = time.time()
        rendered = self._render_prompt(prompt, system_prompt)

        inputs = self.tokenizer(rendered, return_tensors="pt")
        if self.device == DEVICE_CUDA:
            inputs = inputs.to(DEVICE_CUDA)

        prompt_tokens = inputs.input_ids.shape[1]

        try:
            with torch.no_grad():
                outputs = self.model.generate(
                    inputs.input_ids,
                    attention_mask=inputs.attention_mask,
                    max_new_tokens=max_tokens,
                    temperature=temperature if temperature > 0 else None,
                    do_sample=temperature > 0,
                    pad_token_id=self.tokenizer.pad_token_id
                )
        except torch.cuda.OutOfMemoryError:
            logger.error("CUDA OOM during generation")
            logger.error(f"Prompt tokens: {prompt_tokens}, Max new: {max_tokens}")
            raise

        generated_ids = outputs[0][prompt_tokens:]
        generated_text = self.tokenizer.decode(generated_ids, skip_special_tokens=True)

        elapsed_ms = (time.time() - start_time) * 1000
        completion_tokens = len([
            t for t in generated_ids
            if t != self.tokenizer.pad_token_id
        ])
        logger.debug(
            f"Generated {completion_tokens} tokens in {elapsed_ms:.0f}ms "
            f"(prompt {prompt_tokens})"
        )

        if return_diagnostics:
            return {
                "text": generated_text,
                "diagnostics": {
                    "prompt_tokens": prompt_tokens,
                    "completion_tokens": completion_tokens,
                    "total_tokens": prompt_tokens + completion_tokens,
                    "latency_ms": elapsed_ms
                }
            }

        return generated_text

    def generate_json(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 512,
        temperature: float = 0.0
    ) -> str:
        """
        Generate a JSON object completion with repair

        Returns a string, not parsed JSON. Caller must json.loads().
        """
        text = self.generate(
            prompt=prompt,
            system_prompt=system_prompt,
            max_tokens=max_tokens,
            temperature=temperature
        )
        return repair_json(text)

    def get_model_info(self) -> Dict[str, Any]:
        info = {
            "model_name": self.model_name,
            "device": self.device,
            "is_loaded": self.is_loaded()
        }

        if self.device == DEVICE_CUDA and torch.cuda.is_available():
            info["gpu_memory_allocated_gb"] = torch.cuda.memory_allocated() / 1e9
            info["gpu_memory_reserved_gb"] = torch.cuda.memory_reserved() / 1e9

        return info


def repair_json(text: str) -> str:
    """
    Repair common JSON formatting issues in model output

    Strips markdown fences, keeps the outermost {...} span and balances
    braces. Only handles object output (not arrays).
    """
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]

    text = text.strip()

    first_brace = text.find('{')
    last_brace = text.rfind('}')

    if first_brace == -1:
        logger.warning("No braces found in JSON repair")
        return text

    text = text[first_brace:] if last_brace < first_brace else text[first_brace:last_brace + 1]

    open_count = text.count('{')
    close_count = text.count('}')

    if open_count > close_count:
        missing = open_count - close_count
        text += '}' * missing
        logger.debug(f"Added {missing} closing braces")

    return text
