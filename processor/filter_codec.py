"""Serialize filter settings to and from a flat string-keyed map."""
import logging
from datetime import date, time
from typing import Any, Dict, Mapping, Optional, Type, TypeVar
from urllib.parse import parse_qsl, urlencode

from processor.models import (
    ALL_RINKS_VIEW,
    DEFAULT_NUMBER_OF_DAYS,
    MAX_NUMBER_OF_DAYS,
    Category,
    DateMode,
    FilterMode,
    FilterSettings,
    TimeMode,
)
from processor.timezone import parse_clock

logger = logging.getLogger(__name__)

E = TypeVar('E', DateMode, TimeMode, FilterMode)

CATEGORY_ORDER = {category: index for index, category in enumerate(Category)}


def _format_time(value: time) -> str:
    if value.second:
        return value.strftime('%H:%M:%S')
    return value.strftime('%H:%M')


def encode(settings: FilterSettings) -> Dict[str, str]:
    """
    Encode settings as a flat map, omitting every value equal to its default.

    Sub-fields that the selected mode ignores are omitted as well.
    """
    defaults = FilterSettings()
    params: Dict[str, str] = {}

    if settings.view != defaults.view:
        params['view'] = settings.view

    if settings.category_mode != defaults.category_mode:
        params['mode'] = settings.category_mode.value
    if settings.active_categories:
        ordered = sorted(settings.active_categories, key=CATEGORY_ORDER.__getitem__)
        params['categories'] = ','.join(category.value for category in ordered)

    if settings.rink_mode != defaults.rink_mode:
        params['rinkMode'] = settings.rink_mode.value
    if settings.active_rink_ids:
        params['rinkIds'] = ','.join(sorted(settings.active_rink_ids))

    if settings.date_mode != defaults.date_mode:
        params['dateMode'] = settings.date_mode.value
    if settings.date_mode == DateMode.NEXT_DAYS and settings.number_of_days != defaults.number_of_days:
        params['days'] = str(settings.number_of_days)
    if settings.date_mode == DateMode.SPECIFIC_DAY and settings.selected_date:
        params['date'] = settings.selected_date.isoformat()
    if settings.date_mode == DateMode.DATE_RANGE:
        if settings.date_range_start:
            params['dateStart'] = settings.date_range_start.isoformat()
        if settings.date_range_end:
            params['dateEnd'] = settings.date_range_end.isoformat()

    if settings.time_mode != defaults.time_mode:
        params['timeMode'] = settings.time_mode.value
    if settings.time_mode == TimeMode.AFTER and settings.after_time:
        params['afterTime'] = _format_time(settings.after_time)
    if settings.time_mode == TimeMode.BEFORE and settings.before_time:
        params['beforeTime'] = _format_time(settings.before_time)
    if settings.time_mode == TimeMode.RANGE:
        if settings.time_range_start:
            params['timeStart'] = _format_time(settings.time_range_start)
        if settings.time_range_end:
            params['timeEnd'] = _format_time(settings.time_range_end)

    return params


def _get(params: Mapping[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _enum(params: Mapping[str, Any], key: str, enum_type: Type[E], default: E) -> E:
    raw = _get(params, key)
    if raw is None:
        return default
    try:
        return enum_type(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {key}={raw!r}; using {default.value}")
        return default


def _date(params: Mapping[str, Any], key: str) -> Optional[date]:
    raw = _get(params, key)
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {key}={raw!r}")
        return None


def _time(params: Mapping[str, Any], key: str) -> Optional[time]:
    raw = _get(params, key)
    if raw is None:
        return None
    parsed = parse_clock(raw)
    if parsed is None:
        logger.warning(f"Ignoring invalid {key}={raw!r}")
    return parsed


def _days(params: Mapping[str, Any]) -> int:
    raw = _get(params, 'days')
    if raw is None:
        return DEFAULT_NUMBER_OF_DAYS
    try:
        days = int(raw)
    except ValueError:
        days = 0
    if not 1 <= days <= MAX_NUMBER_OF_DAYS:
        logger.warning(f"Ignoring invalid days={raw!r}; using {DEFAULT_NUMBER_OF_DAYS}")
        return DEFAULT_NUMBER_OF_DAYS
    return days


def _split(raw: Optional[str]) -> list:
    if not raw:
        return []
    return [part.strip() for part in raw.split(',') if part.strip()]


def decode(params: Optional[Mapping[str, Any]]) -> FilterSettings:
    """
    Decode a flat map into FilterSettings.

    Never fails: missing or malformed keys fall back to their defaults.
    Values may be plain strings or single-item lists (as from parse_qs).
    """
    params = params or {}
    defaults = FilterSettings()

    categories = []
    for raw_category in _split(_get(params, 'categories')):
        category = Category.from_value(raw_category)
        if category is None:
            logger.warning(f"Ignoring unknown category {raw_category!r}")
            continue
        categories.append(category)

    return FilterSettings(
        view=_get(params, 'view') or ALL_RINKS_VIEW,
        date_mode=_enum(params, 'dateMode', DateMode, defaults.date_mode),
        number_of_days=_days(params),
        selected_date=_date(params, 'date'),
        date_range_start=_date(params, 'dateStart'),
        date_range_end=_date(params, 'dateEnd'),
        time_mode=_enum(params, 'timeMode', TimeMode, defaults.time_mode),
        after_time=_time(params, 'afterTime'),
        before_time=_time(params, 'beforeTime'),
        time_range_start=_time(params, 'timeStart'),
        time_range_end=_time(params, 'timeEnd'),
        rink_mode=_enum(params, 'rinkMode', FilterMode, defaults.rink_mode),
        active_rink_ids=frozenset(_split(_get(params, 'rinkIds'))),
        category_mode=_enum(params, 'mode', FilterMode, defaults.category_mode),
        active_categories=frozenset(categories),
    )


def to_query_string(settings: FilterSettings) -> str:
    """Encode settings as a URL query string (without the leading '?')."""
    return urlencode(encode(settings))


def from_query_string(query: str) -> FilterSettings:
    """Decode a URL query string, with or without the leading '?'."""
    return decode(dict(parse_qsl(query.lstrip('?'))))
