"""
EvalArena: side-by-side LLM evaluation

Streams one prompt to several models at once, measures latency and
throughput per model, scores each response against an expected output and
stores the results per experiment.

Main components:
- providers: Model backend adapters (OpenAI, Groq, Google, Ollama)
- evaluation: Request types and the fan-out orchestrator
- streaming: SSE framing, stream multiplexer, client-side assembly
- scoring: Exact match, cosine similarity, LLM-as-judge
- storage: Experiments, test cases and results
- reporting: Per-experiment summaries with Jinja2 templates
- api: FastAPI application
"""

__version__ = "0.1.0"
