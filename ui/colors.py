# ui/colors.py
COLORS = {
    # Темная тема
    "primary_bg": "#1A1A1A",  # Фон страницы
    "secondary_bg": "#2D2D2D",  # Боковая панель
    "card_bg": "#252525",  # Фон карточек
    "input_bg": "#2D2D2D",  # Фон полей ввода
    "border": "#404040",
    "text_primary": "#FFFFFF",
    "text_secondary": "#C8C8C8",
    "accent": "#00A0E9",
    "accent_hover": "#0078B6",
    "success": "#00D4AA",
    "warning": "#F5A623",
    "error": "#E4002B",
}

COLORS_LIGHT = {
    # Светлая тема
    "primary_bg": "#FFFFFF",
    "secondary_bg": "#F8F8F8",
    "card_bg": "#F8F8F8",
    "input_bg": "#FFFFFF",
    "border": "#DDDDDD",
    "text_primary": "#000000",
    "text_secondary": "#666666",
    "accent": "#00A0E9",
    "accent_hover": "#0078B6",
    "success": "#00A650",
    "warning": "#D48806",
    "error": "#E4002B",
}

THEMES = {
    "dark": COLORS,
    "light": COLORS_LIGHT,
}

# Цвет бейджа статуса задачи (ключ палитры)
STATUS_COLORS = {
    "created": "error",
    "assigned": "warning",
    "done": "success",
}


def get_palette(theme: str) -> dict:
    """Палитра темы; неизвестная тема - темная"""
    return THEMES.get(theme, COLORS)
