from jinja2 import Environment, StrictUndefined

_env = Environment(undefined=StrictUndefined, autoescape=False)


def render(title_jinja: str, body_jinja: str, ctx: dict) -> tuple[str, str]:
    title = _env.from_string(title_jinja).render(**ctx)
    body = _env.from_string(body_jinja).render(**ctx)
    return title, body


def render_text(text_jinja: str | None, ctx: dict) -> str | None:
    if not text_jinja:
        return text_jinja
    return _env.from_string(text_jinja).render(**ctx)
