"""Flet-based interface for the NeonGenesis text-to-JSON-to-image studio.

The window has two modes. Create turns a short idea into a structured JSON
prompt and then into an image. Edit applies a text instruction to an
uploaded image. The UI holds no state of its own: it forwards user actions
to an ``OrchestrationController`` and re-renders whenever the controller
publishes a new ``SessionState``.

Typical usage:
    python main.py

Or programmatically:
    import flet as ft
    from neongenesis.fletui import main
    ft.app(target=main)
"""

import logging
import os
import threading
from typing import Any, Dict, Optional

import flet as ft

from neongenesis.config import StudioConfig, load_config
from neongenesis.controller import (
    DownloadPayload,
    InteractionMode,
    OrchestrationController,
    Phase,
    SessionState,
)
from neongenesis.gemini_service import GeminiImageService, StructuredPrompt
from neongenesis.images import ImageSaver, image_file_to_data_url, strip_data_url_prefix

logger = logging.getLogger(__name__)

APP_TITLE: str = "NeonGenesis"
PREVIEW_VALUE_LIMIT: int = 50
"""Characters of each prompt field shown in the JSON preview panel."""

UPLOAD_URL_EXPIRY_SECONDS: int = 600

PHASE_MESSAGES: Dict[Phase, str] = {
    Phase.ENHANCING: "Converting your idea into a structured prompt...",
    Phase.SYNTHESIZING: "Generating image...",
    Phase.EDITING: "Applying edit...",
}


# =============================================================================
# PURE FUNCTIONS - View data
# =============================================================================


def format_prompt_preview(prompt: StructuredPrompt, limit: int = PREVIEW_VALUE_LIMIT) -> str:
    """Render a StructuredPrompt as the abbreviated JSON shown while working.

    Example:
        >>> print(format_prompt_preview(StructuredPrompt("fox", "a fox", "ink")))
        {
          "subject": "fox...",
          "detailed_description": "a fox...",
          "artistic_style": "ink...",
        }
    """
    lines = ["{"]
    for key, value in prompt.to_dict().items():
        lines.append(f'  "{key}": "{value[:limit]}...",')
    lines.append("}")
    return "\n".join(lines)


def create_status(state: SessionState) -> str:
    if state.error_message:
        return state.error_message
    if state.is_busy:
        return PHASE_MESSAGES[state.phase]
    if state.result_image:
        return "Image ready."
    return "Ready"


def resolve_download_path(config: StudioConfig, filename: str) -> Optional[str]:
    """Return where to save a download directly, or None to ask with a dialog.

    Browser sessions get no path back from the save dialog, so they write
    into ``download_dir``.
    """
    if config.view == "web":
        return os.path.join(config.download_dir, filename)
    return None


def create_view_data(state: SessionState) -> Dict[str, Any]:
    """Compute every label and visibility flag the UI needs for ``state``.

    Args:
        state: The current session snapshot.

    Returns:
        A dictionary of plain values; see ``UIUpdater.render`` for how each
        key maps to a control.
    """
    is_create = state.mode is InteractionMode.CREATE
    busy = state.is_busy
    prompt = state.structured_prompt

    if busy:
        submit_label = "Processing..."
    elif is_create:
        submit_label = "Convert to JSON & Generate"
    else:
        submit_label = "Apply Edit"

    if state.phase is Phase.ENHANCING:
        json_text = "Processing natural language..."
    elif prompt is not None:
        json_text = format_prompt_preview(prompt)
    else:
        json_text = ""

    if busy:
        placeholder_message = "The AI is constructing your visual data..."
    elif is_create:
        placeholder_message = "Enter a prompt to start the text-to-JSON-to-Image pipeline."
    else:
        placeholder_message = "Upload an image and tell the AI how to change it."

    details: Optional[Dict[str, str]] = None
    if is_create and prompt is not None and state.result_image:
        details = {
            "description": prompt.detailed_description,
            "style": prompt.artistic_style,
            "mood": prompt.mood or "",
        }

    return {
        "panel_title": "Prompt Engineering" if is_create else "Image Manipulation",
        "input_label": (
            "Describe your vision" if is_create else 'Instructions (e.g., "Make it cyberpunk")'
        ),
        "input_hint": (
            "A futuristic city with flying cars and neon lights in the rain..."
            if is_create
            else "Add sunglasses to the cat..."
        ),
        "submit_label": submit_label,
        "submit_disabled": not state.can_submit,
        "controls_disabled": busy,
        "show_upload": not is_create,
        "upload_label": "Change Image" if state.source_image else "Click to upload source image",
        "show_enhance_switch": is_create,
        "show_json_panel": is_create and bool(json_text),
        "json_text": json_text,
        "placeholder_title": "Dreaming..." if busy else "Ready to Create",
        "placeholder_message": placeholder_message,
        "details": details,
        "status": create_status(state),
        "status_is_error": state.error_message is not None,
        "download_disabled": state.result_image is None or busy,
    }


# =============================================================================
# SIDE EFFECTS - UI updates
# =============================================================================


class UIUpdater:
    """Apply session snapshots to the Flet controls.

    All methods call page.update() after making changes, so callers don't
    need to trigger refreshes themselves.

    Attributes:
        page: The Flet Page instance to update.
        controls: Named controls built by ``main``.
    """

    def __init__(self, page: ft.Page, controls: Dict[str, Any]) -> None:
        self.page: ft.Page = page
        self.controls: Dict[str, Any] = controls

    def update_status(self, message: str, is_error: bool = False) -> None:
        """Show a one-off message that is not part of the session state."""
        status = self.controls["status"]
        status.value = message
        status.color = ft.Colors.RED_400 if is_error else ft.Colors.GREY_400
        self.page.update()

    def render(self, state: SessionState) -> None:
        """Bring every control in line with ``state``."""
        view = create_view_data(state)
        c = self.controls

        c["panel_title"].value = view["panel_title"]
        c["input"].label = view["input_label"]
        c["input"].hint_text = view["input_hint"]
        if c["input"].value != state.input_text:
            c["input"].value = state.input_text
        c["input"].disabled = view["controls_disabled"]

        c["create_btn"].disabled = view["controls_disabled"]
        c["edit_btn"].disabled = view["controls_disabled"]
        c["create_btn"].style = _mode_button_style(state.mode is InteractionMode.CREATE)
        c["edit_btn"].style = _mode_button_style(state.mode is InteractionMode.EDIT)

        c["enhance_switch"].visible = view["show_enhance_switch"]
        c["enhance_switch"].value = state.enhance
        c["enhance_switch"].disabled = view["controls_disabled"]

        c["upload_section"].visible = view["show_upload"]
        c["upload_btn"].text = view["upload_label"]
        c["upload_btn"].disabled = view["controls_disabled"]
        self._render_source(state.source_image)

        c["json_panel"].visible = view["show_json_panel"]
        c["json_text"].value = view["json_text"]
        c["json_text"].opacity = 0.5 if state.phase is Phase.ENHANCING else 1.0

        c["submit_btn"].text = view["submit_label"]
        c["submit_btn"].disabled = view["submit_disabled"]
        c["progress"].visible = view["controls_disabled"]
        c["download_btn"].disabled = view["download_disabled"]

        c["status"].value = view["status"]
        c["status"].color = ft.Colors.RED_400 if view["status_is_error"] else ft.Colors.GREY_400

        self._render_result(state.result_image, view)
        self.page.update()

    def _render_source(self, source_image: Optional[str]) -> None:
        preview = self.controls["source_preview"]
        if source_image:
            preview.content = ft.Image(
                src_base64=strip_data_url_prefix(source_image),
                fit=ft.ImageFit.COVER,
                expand=True,
            )
        else:
            preview.content = ft.Column(
                [
                    ft.Icon(ft.Icons.UPLOAD, size=32, color=ft.Colors.GREY_600),
                    ft.Text("No source image", size=12, color=ft.Colors.GREY_600),
                ],
                horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                alignment=ft.MainAxisAlignment.CENTER,
            )

    def _render_result(self, result_image: Optional[str], view: Dict[str, Any]) -> None:
        """Show the result with its prompt details, or the placeholder."""
        container = self.controls["image_container"]
        if not result_image:
            container.content = ft.Column(
                [
                    ft.Icon(ft.Icons.AUTO_AWESOME, size=40, color=ft.Colors.GREY_700),
                    ft.Text(view["placeholder_title"], size=20, color=ft.Colors.GREY_300),
                    ft.Text(
                        view["placeholder_message"],
                        size=14,
                        color=ft.Colors.GREY_500,
                        text_align=ft.TextAlign.CENTER,
                    ),
                ],
                horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                alignment=ft.MainAxisAlignment.CENTER,
            )
            return

        column = [
            ft.Container(
                content=ft.Image(
                    src_base64=strip_data_url_prefix(result_image),
                    fit=ft.ImageFit.CONTAIN,  # Maintains aspect ratio, scales to fit
                    expand=True,
                ),
                expand=True,
                alignment=ft.alignment.center,
                bgcolor=ft.Colors.BLACK54,
                border_radius=8,
                clip_behavior=ft.ClipBehavior.HARD_EDGE,
            )
        ]
        details = view["details"]
        if details:
            column.append(
                ft.Container(
                    content=ft.Column(
                        [
                            ft.Text(
                                "Enhanced Prompt Used",
                                color=ft.Colors.CYAN_400,
                                weight=ft.FontWeight.BOLD,
                            ),
                            ft.Text(details["description"], size=13, color=ft.Colors.GREY_300),
                            ft.Row(
                                [
                                    _tag(details["style"], ft.Colors.CYAN_300),
                                    _tag(details["mood"], ft.Colors.BLUE_300),
                                ],
                                wrap=True,
                            ),
                        ],
                        spacing=6,
                        scroll=ft.ScrollMode.AUTO,
                    ),
                    padding=12,
                    height=160,
                    bgcolor=ft.Colors.BLACK87,
                    border_radius=8,
                )
            )
        container.content = ft.Column(column, expand=True, spacing=8)


def _mode_button_style(active: bool) -> ft.ButtonStyle:
    if active:
        return ft.ButtonStyle(bgcolor=ft.Colors.CYAN_900, color=ft.Colors.CYAN_200)
    return ft.ButtonStyle(color=ft.Colors.GREY_400)


def _tag(text: str, color: str) -> ft.Control:
    return ft.Container(
        content=ft.Text(text, size=11, color=color),
        padding=ft.padding.symmetric(horizontal=8, vertical=2),
        border=ft.border.all(1, color),
        border_radius=4,
        visible=bool(text),
    )


# =============================================================================
# APPLICATION
# =============================================================================


def main(page: ft.Page, config: Optional[StudioConfig] = None) -> None:
    """Main Flet application entry point.

    Builds the controls, wires them to an OrchestrationController and
    renders the initial state. Remote calls run in background threads so the
    UI stays responsive.

    Args:
        page: Flet page object for UI rendering.
        config: Settings; loaded from the environment when omitted.
    """
    config = config or load_config()

    page.title = f"{APP_TITLE} (text-to-JSON-to-image with {config.image_model})"
    page.theme_mode = ft.ThemeMode.DARK
    page.window.width = 1280
    page.window.height = 860
    page.padding = 20

    service = GeminiImageService(config)
    pending_download: Dict[str, Optional[DownloadPayload]] = {"payload": None}

    # UI Components - mode switch
    create_btn = ft.ElevatedButton("Create", icon=ft.Icons.AUTO_FIX_HIGH)
    edit_btn = ft.ElevatedButton("Edit", icon=ft.Icons.IMAGE)

    # Controls panel
    panel_title = ft.Text("", size=18, weight=ft.FontWeight.BOLD, color=ft.Colors.CYAN_400)
    input_field = ft.TextField(multiline=True, min_lines=4, max_lines=6, expand=False)
    enhance_switch = ft.Switch(label="Enhance prompt with AI", value=True)

    source_preview = ft.Container(
        height=180,
        alignment=ft.alignment.center,
        border=ft.border.all(1, ft.Colors.GREY_800),
        border_radius=8,
        clip_behavior=ft.ClipBehavior.HARD_EDGE,
    )
    upload_btn = ft.OutlinedButton("Click to upload source image", icon=ft.Icons.UPLOAD)
    upload_section = ft.Column([source_preview, upload_btn], spacing=8, visible=False)

    json_text = ft.Text("", font_family="monospace", size=12, selectable=True)
    json_panel = ft.Container(
        content=ft.Column(
            [
                ft.Row(
                    [
                        ft.Icon(ft.Icons.TERMINAL, size=14, color=ft.Colors.GREY_500),
                        ft.Text("JSON_PROMPT_CONVERTER", size=11, color=ft.Colors.GREY_500),
                    ]
                ),
                json_text,
            ],
            spacing=6,
        ),
        padding=12,
        bgcolor=ft.Colors.BLACK87,
        border=ft.border.all(1, ft.Colors.GREY_800),
        border_radius=8,
        visible=False,
    )

    submit_btn = ft.ElevatedButton("Convert to JSON & Generate", icon=ft.Icons.BOLT, disabled=True)
    progress = ft.ProgressRing(width=20, height=20, visible=False)
    status_text = ft.Text("Ready", size=13, color=ft.Colors.GREY_400)

    # Output panel
    image_container = ft.Container(
        expand=True,
        alignment=ft.alignment.center,
        border=ft.border.all(1, ft.Colors.GREY_800),
        border_radius=8,
        padding=12,
    )
    download_btn = ft.IconButton(icon=ft.Icons.DOWNLOAD, tooltip="Download image", disabled=True)

    ui_updater = UIUpdater(
        page,
        {
            "create_btn": create_btn,
            "edit_btn": edit_btn,
            "panel_title": panel_title,
            "input": input_field,
            "enhance_switch": enhance_switch,
            "source_preview": source_preview,
            "upload_btn": upload_btn,
            "upload_section": upload_section,
            "json_panel": json_panel,
            "json_text": json_text,
            "submit_btn": submit_btn,
            "progress": progress,
            "status": status_text,
            "image_container": image_container,
            "download_btn": download_btn,
        },
    )
    controller = OrchestrationController(service, on_change=ui_updater.render)

    def load_source(path: str) -> None:
        """Read a picked file and hand it to the controller as the source."""
        try:
            controller.upload_source(image_file_to_data_url(path))
        except (ValueError, OSError) as e:
            logger.warning("Could not load source image %s: %s", path, e)
            ui_updater.update_status(f"Could not load image: {e}", is_error=True)

    def on_pick_result(e: ft.FilePickerResultEvent) -> None:
        if not e.files:
            return
        picked = e.files[0]
        if picked.path:
            load_source(picked.path)
            return
        # Browser sessions get no local path; upload into upload_dir first.
        upload_picker.upload(
            [
                ft.FilePickerUploadFile(
                    picked.name,
                    upload_url=page.get_upload_url(picked.name, UPLOAD_URL_EXPIRY_SECONDS),
                )
            ]
        )

    def on_upload(e: ft.FilePickerUploadEvent) -> None:
        if e.error:
            ui_updater.update_status(f"Upload failed: {e.error}", is_error=True)
        elif e.progress is not None and e.progress >= 1.0:
            load_source(os.path.join(config.upload_dir, e.file_name))

    def save_download(path: str) -> None:
        payload = pending_download["payload"]
        pending_download["payload"] = None
        if payload is None:
            return
        try:
            saved = ImageSaver.save_data_url(payload.data_url, path)
        except (ValueError, OSError) as e:
            logger.exception("Saving %s failed", path)
            ui_updater.update_status(f"Error saving image: {e}", is_error=True)
            return
        ui_updater.update_status(f"Image saved as {saved}")

    def on_save_result(e: ft.FilePickerResultEvent) -> None:
        if e.path:
            save_download(e.path)
        else:
            pending_download["payload"] = None
            ui_updater.update_status("Save cancelled")

    upload_picker = ft.FilePicker(on_result=on_pick_result, on_upload=on_upload)
    save_picker = ft.FilePicker(on_result=on_save_result)
    page.overlay.extend([upload_picker, save_picker])

    def submit_thread() -> None:
        """Background thread for the remote calls to prevent UI blocking."""
        try:
            controller.submit()
        except Exception as e:
            logger.exception("Submission failed unexpectedly")
            ui_updater.render(controller.state)
            ui_updater.update_status(f"Error: {e}", is_error=True)

    def on_submit_click(_: ft.ControlEvent) -> None:
        if not controller.state.can_submit:
            return
        threading.Thread(target=submit_thread, daemon=True).start()

    def on_download_click(_: ft.ControlEvent) -> None:
        payload = controller.download()
        if payload is None:
            ui_updater.update_status("No image to save")
            return
        pending_download["payload"] = payload
        direct_path = resolve_download_path(config, payload.filename)
        if direct_path:
            save_download(direct_path)
        else:
            save_picker.save_file(file_name=payload.filename, allowed_extensions=["png"])

    create_btn.on_click = lambda _: controller.switch_mode(InteractionMode.CREATE)
    edit_btn.on_click = lambda _: controller.switch_mode(InteractionMode.EDIT)
    input_field.on_change = lambda e: controller.set_input_text(e.control.value)
    enhance_switch.on_change = lambda e: controller.set_enhance(e.control.value)
    upload_btn.on_click = lambda _: upload_picker.pick_files(
        allow_multiple=False, file_type=ft.FilePickerFileType.IMAGE
    )
    submit_btn.on_click = on_submit_click
    download_btn.on_click = on_download_click

    controls_panel = ft.Container(
        content=ft.Column(
            [
                panel_title,
                upload_section,
                input_field,
                enhance_switch,
                json_panel,
                ft.Row([submit_btn, progress], spacing=10),
                status_text,
            ],
            spacing=15,
            scroll=ft.ScrollMode.AUTO,
        ),
        padding=20,
        bgcolor=ft.Colors.with_opacity(0.04, ft.Colors.WHITE),
        border=ft.border.all(1, ft.Colors.GREY_800),
        border_radius=12,
        expand=5,
    )

    output_panel = ft.Container(
        content=ft.Column(
            [
                ft.Row(
                    [ft.Text("Output", size=18, weight=ft.FontWeight.BOLD), download_btn],
                    alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                ),
                image_container,
            ],
            expand=True,
        ),
        padding=20,
        border=ft.border.all(1, ft.Colors.GREY_800),
        border_radius=12,
        expand=7,
    )

    page.add(
        ft.Column(
            [
                ft.Row(
                    [
                        ft.Row(
                            [
                                ft.Icon(ft.Icons.AUTO_AWESOME, color=ft.Colors.CYAN_400),
                                ft.Text(APP_TITLE, size=24, weight=ft.FontWeight.BOLD),
                            ]
                        ),
                        ft.Row([create_btn, edit_btn], spacing=6),
                    ],
                    alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                ),
                ft.Divider(color=ft.Colors.GREY_900),
                ft.Row(
                    [controls_panel, output_panel],
                    spacing=20,
                    expand=True,
                    vertical_alignment=ft.CrossAxisAlignment.START,
                ),
            ],
            expand=True,
        )
    )
    ui_updater.render(controller.state)
