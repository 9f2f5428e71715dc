"""
Alert message pools.

Each condition has a few (title, message) variants. Picking one is a pure
function of the condition, a formatting context and an injected random
source, so tests can seed it. The first variant of each pool is the
canonical wording and is used when no random source is given.
"""

import random
from typing import Optional

# Placeholders available to templates: temp, diff, humidity, uv, wind,
# direction, time_of_day, TimeOfDay, intensity, Intensity, place
MESSAGE_POOLS: dict[str, tuple[tuple[str, str], ...]] = {
    # ── Unusual ──────────────────────────────────────────────────────
    "warm_spell": (
        ("🌡️ Sudden Warm Spell!",
         "{temp}°C is {diff}° warmer than usual! Perfect for outdoor adventures!"),
        ("🌡️ Warm Spell Incoming!",
         "It's {diff}° warmer than the last few hours at {temp}°C. Shorts weather might be back!"),
    ),
    "temperature_drop": (
        ("🥶 Temperature Drop Alert!",
         "{temp}°C is {diff}° cooler than usual! Time to bundle up!"),
        ("🥶 Sudden Temperature Drop!",
         "{diff}° colder than recent readings at {temp}°C. Grab an extra layer on the way out!"),
    ),
    "pressure_rising": (
        ("📈 High Pressure System!",
         "Atmospheric pressure rising significantly! Clear skies ahead!"),
        ("📈 Pressure on the Rise!",
         "The barometer is climbing fast. Settled, brighter weather is likely on the way!"),
    ),
    "pressure_falling": (
        ("📉 Low Pressure Alert!",
         "Atmospheric pressure dropping significantly! Weather changes coming!"),
        ("📉 Pressure Is Dropping!",
         "The barometer is falling fast. Keep an eye on the sky, things may turn unsettled!"),
    ),
    # ── Opportunity ──────────────────────────────────────────────────
    "perfect_weather": (
        ("🌟 Perfect Weather Alert!",
         "{temp}°C with clear skies! This is your sign to get outside - picnic, walk, "
         "or just soak up the amazing vibes! ☀️"),
        ("🌟 Perfect Weather Right Now!",
         "Clear skies and {temp}°C{place}. Nature is showing off, go enjoy it! ☀️"),
    ),
    "golden_hour": (
        ("🌅 Epic {TimeOfDay} Alert!",
         "Clear skies = spectacular {time_of_day}! Grab your camera and find a good spot - "
         "nature's about to put on a show! 📸"),
        ("🌅 {TimeOfDay} Worth Watching!",
         "The sky is clear enough for a memorable {time_of_day}. Step outside for a few minutes! 📸"),
    ),
    "stargazing": (
        ("⭐ Stargazing Paradise!",
         "Crystal clear skies tonight! Perfect for stargazing - grab a blanket and look up! "
         "The universe is calling! 🌌"),
        ("⭐ Clear Night for Stargazing!",
         "No clouds in the way tonight. Find a dark spot and let your eyes adjust! 🌌"),
    ),
    "snow_day": (
        ("❄️ Snow Day Magic!",
         "Fresh snow falling! Time for snowball fights, snow angels, or just enjoying the "
         "winter wonderland! Bundle up and have fun! ⛄"),
        ("❄️ Snow Is Falling!",
         "{temp}°C and snowing. Build a snowman while it lasts! ⛄"),
    ),
    # ── Warning ──────────────────────────────────────────────────────
    "rain": (
        ("☔ Rain Alert!",
         "{Intensity} rain detected! Don't forget your umbrella and maybe waterproof shoes. "
         "Puddle jumping is optional but encouraged! 🌧️"),
        ("☔ Rain Outside!",
         "{Intensity} rain right now{place}. Umbrella time! 🌧️"),
    ),
    "high_uv": (
        ("🕶️ UV Alert!",
         "UV index is {uv}! Time for sunscreen, sunglasses, and a hat. Your future self will "
         "thank you for the sun protection! ☀️"),
        ("🕶️ Strong UV Alert!",
         "UV index {uv}. Sunscreen and shade are your friends today! ☀️"),
    ),
    "extreme_cold": (
        ("🥶 Extreme Cold Alert!",
         "{temp}°C is seriously cold! Layer up like an onion, cover exposed skin, and maybe "
         "have some hot cocoa ready! Stay warm! 🧥"),
        ("🥶 Bitter Cold Outside!",
         "{temp}°C out there. Cover exposed skin and keep trips outside short! 🧥"),
    ),
    "high_wind": (
        ("💨 Windy Conditions!",
         "{wind} km/h winds! Hold onto your hat, secure loose items, and maybe skip the "
         "umbrella today. Nature's having a blustery day! 🌪️"),
        ("💨 Strong Wind Alert!",
         "Gusts around {wind} km/h. Secure anything that could blow away! 🌪️"),
    ),
    "extreme_heat": (
        ("🔥 Heat Wave Alert!",
         "{temp}°C is sizzling! Stay hydrated, seek shade, and maybe save outdoor activities "
         "for later. Your AC is your best friend today! 🧊"),
        ("🔥 Extreme Heat Today!",
         "{temp}°C{place}. Drink water, stay in the shade and check on neighbours! 🧊"),
    ),
    # ── Interesting ──────────────────────────────────────────────────
    "fog": (
        ("🌫️ Mysterious Fog!",
         "Foggy conditions creating a mystical atmosphere! Drive carefully but enjoy the "
         "ethereal vibes - it's like being in a movie! 👻"),
        ("🌫️ Fog Rolling In!",
         "Visibility is low. Take it slow on the roads and enjoy the moody scenery! 👻"),
    ),
    "high_humidity": (
        ("💧 Tropical Vibes!",
         "{humidity}% humidity is giving major tropical feels! Your hair might have its own "
         "plans today, but embrace the natural volume! 🌴"),
        ("💧 Humid and Tropical!",
         "{humidity}% humidity at {temp}°C. It'll feel warmer than it is! 🌴"),
    ),
    "perfect_temperature": (
        ("🌡️ Goldilocks Temperature!",
         "{temp}°C - not too hot, not too cold, just perfect! This is the temperature that "
         "makes everyone happy. Enjoy this rare gift! ✨"),
        ("🌡️ Goldilocks Weather!",
         "A just-right {temp}°C{place}. Enjoy it while it lasts! ✨"),
    ),
}


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return ""


def compose_message(
    condition: str,
    context: Optional[dict] = None,
    rng: Optional[random.Random] = None,
) -> tuple[str, str]:
    """
    Pick and fill a (title, message) pair for a condition.

    Args:
        condition: Key into MESSAGE_POOLS
        context: Template values; unknown placeholders render empty
        rng: Random source; None selects the canonical (first) variant

    Raises:
        KeyError: if the condition has no pool
    """
    pool = MESSAGE_POOLS[condition]
    title, message = pool[0] if rng is None else rng.choice(pool)
    values = _SafeDict(context or {})
    return title.format_map(values), message.format_map(values)
