#!/usr/bin/env python3
"""Manage FNSKU label templates and settings, and render label PDFs."""

import argparse
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from dotenv import load_dotenv

from errors import LabelError, TemplateNotFound
from label_generation import render_pdf, render_png
from label_renderer import LabelRenderer
from label_templates.base import Template
from label_types import DataRecord
from settings_store import DEFAULT_SAVE_DELAY, SettingsStore
from storage import JsonFileStorage
from template_store import TemplateStore

logger = logging.getLogger(__name__)

DEFAULT_STORE = "~/.fnsku_labels/storage.json"
MAX_QUANTITY = 1000


def _parse_setting_pairs(pairs: Sequence[str]) -> Dict[str, Any]:
    """Turn ``KEY=VALUE`` pairs into a partial global settings update.

    Values are read as JSON when possible (numbers, booleans, ``null``,
    objects) and as plain strings otherwise. ``KEY.SUB=VALUE`` sets one
    entry of a mapping-valued setting such as ``font_size_overrides``.
    """

    parsed: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise SystemExit(
                f"Invalid setting '{pair}'. Expected format NAME=VALUE."
            )
        key, raw = pair.split("=", 1)
        key = key.strip().lower().replace("-", "_")
        if not key:
            raise SystemExit("Setting name cannot be empty.")
        try:
            value = json.loads(raw)
        except ValueError:
            value = raw.strip()

        if "." in key:
            head, sub = key.split(".", 1)
            nested = parsed.setdefault(head, {})
            if not isinstance(nested, dict):
                raise SystemExit(f"Setting '{head}' given both as value and mapping.")
            nested[sub] = value
        else:
            parsed[key] = value
    return parsed


def _clamp_quantity(quantity: int) -> int:
    return min(max(quantity, 1), MAX_QUANTITY)


def _read_json_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise SystemExit(f"Cannot read '{path}': {exc}") from exc
    except ValueError as exc:
        raise SystemExit(f"'{path}' is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SystemExit(f"'{path}' must contain a JSON object.")
    return data


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _template_row(template: Template, selected_id: str) -> str:
    marker = "*" if template.id == selected_id else " "
    kind = "user" if template.user_created else "built-in"
    return f"{marker} {template.id:<34} {template.display_name} ({kind})"


async def _merge_mapping_settings(
    settings: SettingsStore,
    changes: Dict[str, Any],
) -> Dict[str, Any]:
    """Merge dotted/mapping updates into the current mapping values."""

    current = (await settings.get_settings()).global_settings.to_dict()
    merged = dict(changes)
    for key, value in changes.items():
        if not isinstance(value, dict):
            continue
        camel = "".join(
            part if i == 0 else part.capitalize()
            for i, part in enumerate(key.split("_"))
        )
        existing = current.get(camel)
        if isinstance(existing, dict):
            merged[key] = {**existing, **value}
    return merged


async def _dispatch(
    args: argparse.Namespace,
    templates: TemplateStore,
    settings: SettingsStore,
) -> str:
    command = args.command

    if command == "templates":
        selected = await settings.get_selected_template_id()
        rows = [
            _template_row(template, selected)
            for template in await templates.get_all_templates()
        ]
        return "\n".join(rows)

    if command == "show":
        template = await templates.get_template(args.template_id)
        if template is None:
            raise TemplateNotFound(args.template_id)
        return _dump({**template.to_dict(), "displayName": template.display_name})

    if command == "select":
        if await templates.get_template(args.template_id) is None:
            raise TemplateNotFound(args.template_id)
        changed = await settings.set_selected_template_id(args.template_id)
        if not changed:
            return f"Template {args.template_id} is already selected."
        return f"Selected template {args.template_id}."

    if command == "settings":
        return _dump((await settings.get_settings()).to_dict())

    if command == "set":
        changes = await _merge_mapping_settings(
            settings, _parse_setting_pairs(args.pairs)
        )
        if await settings.update_global_settings(changes):
            return "Settings updated."
        return "Settings unchanged."

    if command == "reset":
        await settings.reset_settings()
        return "Settings reset to defaults."

    if command == "create":
        template = await templates.create_template(_read_json_file(args.file))
        return f"Created template {template.id} ({template.display_name})."

    if command == "import":
        template = await templates.import_template(_read_json_file(args.file))
        return f"Imported template {template.id} ({template.display_name})."

    if command == "delete":
        await templates.delete_template(args.template_id)
        return f"Deleted template {args.template_id}."

    if command == "export":
        text = _dump(await templates.export_template(args.template_id))
        if args.output:
            Path(args.output).write_text(text + "\n", encoding="utf-8")
            return f"Wrote {args.output}"
        return text

    if command == "render":
        return await _render(args, templates, settings)

    raise SystemExit(f"Unknown command '{command}'.")


async def _render(
    args: argparse.Namespace,
    templates: TemplateStore,
    settings: SettingsStore,
) -> str:
    renderer = LabelRenderer(templates, settings)
    record = DataRecord(
        fnsku=args.fnsku or "",
        sku=args.sku or "",
        asin=args.asin or "",
        title=args.title or "",
        image=args.image or "",
        condition=args.condition or "",
    )
    template = await renderer.resolve_template(args.template)
    quantity = _clamp_quantity(args.quantity)
    if quantity != args.quantity:
        logger.warning("Quantity %d clamped to %d", args.quantity, quantity)
    pages = await renderer.generate_label(record, template, quantity)

    output_path = args.output or "label.pdf"
    pdf_bytes = render_pdf(pages, template, output_path)
    if not args.png:
        return f"Wrote {output_path} ({len(pages)} label(s), {template.display_name})"

    stem = str(Path(output_path).with_suffix(""))
    png_pages = render_png(pdf_bytes, dpi=args.dpi)
    for i, png_bytes in enumerate(png_pages):
        png_name = f"{stem}_{(i + 1):02d}.png"
        with open(png_name, "wb") as handle:
            handle.write(png_bytes)
    return (
        f"Wrote {output_path} and {len(png_pages)} PNG files with prefix "
        f"'{stem}_'."
    )


async def _run(args: argparse.Namespace) -> str:
    storage = JsonFileStorage(args.store)
    templates = TemplateStore(storage)
    settings = SettingsStore(storage, save_delay=args.save_delay)
    try:
        return await _dispatch(args, templates, settings)
    finally:
        if settings.is_saving():
            await settings.force_save()
        settings.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="FNSKU label templates, settings and PDF rendering"
    )
    parser.add_argument(
        "--store",
        default=os.getenv("FNSKU_LABELS_STORE", DEFAULT_STORE),
        help=(
            "JSON file holding templates and settings (defaults to "
            f"FNSKU_LABELS_STORE from the environment/.env, or {DEFAULT_STORE})."
        ),
    )
    parser.add_argument(
        "--save-delay",
        type=float,
        default=float(os.getenv("FNSKU_LABELS_SAVE_DELAY", DEFAULT_SAVE_DELAY)),
        help="Settings autosave debounce window in seconds.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("FNSKU_LABELS_LOG_LEVEL", "WARNING"),
        help="Logging level (default: WARNING).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("templates", help="List built-in and user templates.")

    show = sub.add_parser("show", help="Print one template as JSON.")
    show.add_argument("template_id")

    select = sub.add_parser("select", help="Select the active template.")
    select.add_argument("template_id")

    sub.add_parser("settings", help="Print the current settings as JSON.")

    set_parser = sub.add_parser(
        "set",
        help=(
            "Update global settings, e.g. barcode_format=CODE39 "
            "font_size_overrides.fnsku=12"
        ),
    )
    set_parser.add_argument("pairs", nargs="+", metavar="NAME=VALUE")

    sub.add_parser("reset", help="Reset settings to defaults.")

    create = sub.add_parser("create", help="Create a template from a JSON file.")
    create.add_argument("file")

    import_parser = sub.add_parser(
        "import", help="Import a template exported with 'export'."
    )
    import_parser.add_argument("file")

    delete = sub.add_parser("delete", help="Delete a user template.")
    delete.add_argument("template_id")

    export = sub.add_parser("export", help="Export a template as JSON.")
    export.add_argument("template_id")
    export.add_argument("-o", "--output")

    render = sub.add_parser("render", help="Render labels to a PDF.")
    render.add_argument("--fnsku", required=True)
    render.add_argument("--sku")
    render.add_argument("--asin")
    render.add_argument("--title")
    render.add_argument("--image", help="Product image URL.")
    render.add_argument("--condition")
    render.add_argument(
        "-t", "--template",
        help="Template id (default: the selected template).",
    )
    render.add_argument(
        "-q", "--quantity",
        type=int,
        default=1,
        help=f"Number of labels, clamped to 1..{MAX_QUANTITY} (default: 1).",
    )
    render.add_argument("-o", "--output", help="PDF path (default: label.pdf).")
    render.add_argument(
        "--png",
        action="store_true",
        help="Also write one PNG per label next to the PDF.",
    )
    render.add_argument(
        "--dpi",
        type=int,
        default=300,
        help="PNG resolution (default: 300).",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""

    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=str(args.log_level).upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        message = asyncio.run(_run(args))
    except LabelError as exc:
        raise SystemExit(str(exc)) from exc

    print(message)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
