"""
Rule-based app categorization and package-name helpers.

Apps are classified as positive (wellbeing, learning, fitness, productivity),
negative (social media, games, streaming, gambling) or neutral (system
tools, mail, browsers, maps). Rules apply in strict priority order:

1. The host app itself ("LifeSync Games") is always neutral.
2. Known app names, negative first, then positive, then neutral.
3. Whole-word keyword prefixes, in the same order.
4. Anything else is neutral.
"""

import re
from typing import Dict, List, Optional, Pattern

from lifesync.models import AppCategory

SELF_APP_NAME = "lifesync games"

KEYWORDS: Dict[AppCategory, Dict[str, List[str]]] = {
    AppCategory.NEGATIVE: {
        "social": [
            "instagram", "facebook", "tiktok", "twitter", "x.com", "snapchat", "whatsapp",
            "telegram", "discord", "reddit", "youtube", "pinterest", "linkedin", "wechat",
            "line", "viber", "messenger", "skype", "zoom", "teams", "slack", "signal",
            "tumblr", "flickr", "periscope", "clubhouse", "behance", "dribbble",
            "deviantart", "twitch", "onlyfans", "patreon",
        ],
        "games": [
            "game", "juego", "play", "gaming", "gamer", "arcade", "puzzle", "casino",
            "poker", "blackjack", "slot", "bet", "apuesta", "lotto", "lottery",
            "candy", "crush", "clash", "pubg", "fortnite", "minecraft", "roblox",
            "among us", "call of duty", "fifa", "nba", "madden", "nhl",
            "pokemon go", "angry birds", "temple run", "subway surfers",
            "brawl stars", "hay day", "boom beach", "apex", "valorant",
            "league of legends", "wild rift", "mobile legends", "free fire", "bgmi",
            "genshin impact", "honkai", "diablo",
        ],
        "entertainment": [
            "netflix", "hulu", "disney+", "disney plus", "prime video", "hbo",
            "paramount", "peacock", "crunchyroll", "funimation", "viki",
            "discovery+", "espn", "fox sports", "bein sports",
        ],
        "gambling": ["bet365", "betfair", "william hill", "ladbrokes", "paddy power", "betway"],
    },
    AppCategory.POSITIVE: {
        "education": [
            "duolingo", "khan academy", "coursera", "udemy", "edx", "skillshare",
            "masterclass", "brilliant", "memrise", "babbel", "busuu", "rosetta",
            "codecademy", "freecodecamp", "sololearn", "mimo", "grasshopper",
            "scratch", "typing",
        ],
        "wellness": [
            "headspace", "calm", "medito", "insight timer", "waking up", "ten percent",
            "balance", "simple habit", "smiling mind", "breathe", "meditation",
            "mindfulness", "yoga", "zen",
        ],
        "fitness": [
            "myfitnesspal", "strava", "nike run", "nike training", "adidas running",
            "runtastic", "runkeeper", "endomondo", "map my run", "map my fitness",
            "fitbit", "garmin", "polar", "samsung health", "google fit", "apple health",
            "workout", "fitness", "gym", "exercise", "pilates", "zumba", "dance",
            "running", "cycling", "swimming",
        ],
        "productivity": [
            "todoist", "notion", "evernote", "onenote", "trello", "asana", "monday",
            "clickup", "wunderlist", "omnifocus", "habitica", "forest", "focus",
            "pomodoro", "toggl", "rescuetime", "freedom", "cold turkey",
        ],
        "reading": [
            "kindle", "audible", "goodreads", "pocket", "medium", "blinkist",
            "instapaper", "readwise", "feedly", "inoreader", "news", "book", "ebook",
            "pdf reader", "epub",
        ],
        "personal": [
            "habit", "journal", "diary", "daylio", "mood", "emotion", "gratitude",
            "reflection", "self care", "selfcare", "therapy", "counseling",
        ],
    },
    AppCategory.NEUTRAL: {
        "system": [
            "settings", "configuración", "system", "sistema", "phone", "teléfono",
            "contacts", "contactos", "calendar", "calendario", "clock", "reloj",
            "alarm", "alarma", "timer", "stopwatch", "calculator", "calculadora",
            "notes", "notas", "files", "archivos", "file manager", "gallery", "galería",
            "photos", "fotos", "camera", "cámara", "video", "recorder", "voice", "recording",
        ],
        "communication": [
            "gmail", "mail", "correo", "email", "outlook", "yahoo mail", "protonmail",
            "thunderbird", "spark",
        ],
        "browser": [
            "chrome", "safari", "firefox", "edge", "opera", "brave", "duckduckgo",
            "browser", "navegador", "web", "internet",
        ],
        "maps": ["maps", "mapas", "waze", "mapquest", "tomtom", "navigation", "gps", "directions"],
        "utilities": ["weather", "clima", "translator", "traductor", "translate", "dictionary", "converter"],
    },
}

KNOWN_APPS: Dict[AppCategory, List[str]] = {
    AppCategory.NEGATIVE: [
        "Instagram", "Facebook", "TikTok", "Twitter", "X", "Snapchat", "WhatsApp",
        "Telegram", "Discord", "Reddit", "YouTube", "Pinterest", "LinkedIn", "WeChat",
        "Line", "Viber", "Messenger", "Skype", "Zoom", "Microsoft Teams", "Slack", "Signal",
        "Tumblr", "Flickr", "Twitch", "Clubhouse", "Behance", "Dribbble",
        "PUBG Mobile", "Fortnite", "Minecraft", "Roblox", "Among Us", "Call of Duty Mobile",
        "FIFA Mobile", "NBA 2K", "Madden NFL", "Pokemon GO", "Angry Birds", "Temple Run",
        "Subway Surfers", "Clash of Clans", "Clash Royale", "Brawl Stars", "Hay Day",
        "Candy Crush Saga", "Candy Crush Soda", "Farm Heroes Saga", "Genshin Impact",
        "Honkai Impact", "Diablo Immortal", "League of Legends: Wild Rift", "Mobile Legends",
        "Free Fire", "BGMI", "Apex Legends Mobile", "Valorant",
        "Netflix", "Hulu", "Disney+", "Disney Plus", "Prime Video", "HBO", "HBO Max",
        "Paramount+", "Peacock", "Crunchyroll", "Funimation", "Viki", "Discovery+",
        "ESPN", "Fox Sports", "beIN Sports",
    ],
    AppCategory.POSITIVE: [
        "Duolingo", "Khan Academy", "Coursera", "Udemy", "edX", "Skillshare", "MasterClass",
        "Brilliant", "Memrise", "Babbel", "Busuu", "Rosetta Stone", "Codecademy",
        "freeCodeCamp", "SoloLearn", "Mimo", "Grasshopper", "Scratch", "Typing.com",
        "Headspace", "Calm", "Medito", "Insight Timer", "Waking Up", "Ten Percent Happier",
        "Balance", "Simple Habit", "Smiling Mind", "Stop Breathe Think", "Breathe",
        "MyFitnessPal", "Strava", "Nike Run Club", "Nike Training Club", "Adidas Running",
        "Runtastic", "RunKeeper", "Endomondo", "Map My Run", "Map My Fitness", "Fitbit",
        "Garmin Connect", "Polar Flow", "Samsung Health", "Google Fit", "Apple Health",
        "Home Workout", "Workout", "Yoga", "Pilates", "Zumba",
        "Todoist", "Notion", "Evernote", "OneNote", "Trello", "Asana", "Monday.com",
        "ClickUp", "Wunderlist", "OmniFocus", "Habitica", "Forest", "Focus",
        "Pomodoro", "Toggl", "RescueTime", "Freedom", "Cold Turkey", "StayFocusd",
        "Kindle", "Audible", "Goodreads", "Pocket", "Medium", "Blinkist", "Instapaper",
        "Readwise", "Feedly", "Inoreader",
    ],
    AppCategory.NEUTRAL: [
        "LifeSync Games", "Gmail", "Chrome", "Safari", "Firefox", "Edge", "Maps",
        "Google Maps", "Waze", "Calendar", "Clock", "Calculator", "Settings", "Camera",
        "Photos", "Files", "Mail", "Outlook", "Yahoo Mail", "ProtonMail", "Weather",
        "Translator",
    ],
}

# Readable names for common packages
PACKAGE_NAMES = {
    "com.lifesync.games": "LifeSync Games",
    "com.instagram.android": "Instagram",
    "com.facebook.katana": "Facebook",
    "com.facebook.orca": "Messenger",
    "com.whatsapp": "WhatsApp",
    "org.telegram.messenger": "Telegram",
    "com.twitter.android": "Twitter",
    "com.twitter.x": "X",
    "com.zhiliaoapp.musically": "TikTok",
    "com.snapchat.android": "Snapchat",
    "com.reddit.frontpage": "Reddit",
    "com.youtube.android": "YouTube",
    "com.google.android.youtube": "YouTube",
    "com.duolingo": "Duolingo",
    "com.headspace.app": "Headspace",
    "com.strava": "Strava",
    "com.notion.id": "Notion",
    "com.todoist": "Todoist",
    "com.amazon.kindle": "Kindle",
    "com.audible.application": "Audible",
    "com.spotify.music": "Spotify",
    "com.netflix.mediaclient": "Netflix",
    "com.miui.gallery": "Galería",
    "com.android.chrome": "Chrome",
    "com.google.android.gm": "Gmail",
    "com.google.android.apps.maps": "Google Maps",
}

SYSTEM_PACKAGES = [
    "com.google.android.apps.nexuslauncher",
    "com.google.android.launcher",
    "com.android.launcher",
    "com.sec.android.app.launcher",
    "com.samsung.android.app.spage",
    "com.miui.home",
    "com.huawei.android.launcher",
    "com.oneplus.launcher",
    "com.oppo.launcher",
    "com.vivo.launcher",
    "com.realme.launcher",
    "com.xiaomi.launcher",
    "com.android.settings",
    "com.android.systemui",
    "com.google.android.setupwizard",
    "com.google.android.gms",
    "com.android.permissioncontroller",
    "com.android.packageinstaller",
]

SYSTEM_APP_FRAGMENTS = [
    "launcher", "system", "sistema", "settings", "configuración",
    "permissioncontroller", "packageinstaller", "package installer",
    "com.android", "com.google.android.gms", "com.google.android.setupwizard",
    "com.sec.android", "com.samsung", "com.miui", "com.huawei", "com.oneplus",
    "com.oppo", "com.vivo", "com.realme", "com.xiaomi",
]

_CHECK_ORDER = (AppCategory.NEGATIVE, AppCategory.POSITIVE, AppCategory.NEUTRAL)


def _compile(keywords: List[str]) -> Pattern:
    # "game" matches "game", "games", "gaming" but not "image"
    alternatives = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"\b(?:{alternatives})\w*\b", re.IGNORECASE)


class AppCategorizer:
    """Classify app names as positive, negative or neutral."""

    def __init__(self, known_apps=None, keywords=None):
        known_apps = known_apps or KNOWN_APPS
        keywords = keywords or KEYWORDS
        self._known = {
            category: [app.lower() for app in known_apps.get(category, [])]
            for category in _CHECK_ORDER
        }
        self._patterns = {
            category: _compile([kw for group in keywords.get(category, {}).values() for kw in group])
            for category in _CHECK_ORDER
            if keywords.get(category)
        }

    def categorize(self, app_name) -> AppCategory:
        if not app_name or not isinstance(app_name, str):
            return AppCategory.NEUTRAL

        name = app_name.lower().strip()

        # The host app must never score against itself
        if SELF_APP_NAME in name:
            return AppCategory.NEUTRAL

        known = self.check_known_apps(name)
        if known is not None:
            return known

        for category in _CHECK_ORDER:
            pattern = self._patterns.get(category)
            if pattern is not None and pattern.search(name):
                return category

        return AppCategory.NEUTRAL

    def check_known_apps(self, name: str) -> Optional[AppCategory]:
        for category in _CHECK_ORDER:
            for app in self._known[category]:
                # One-letter names like "X" only match exactly
                if app == name or (len(app) > 2 and app in name):
                    return category
        return None


_default_categorizer = AppCategorizer()


def categorize(app_name) -> AppCategory:
    return _default_categorizer.categorize(app_name)


def package_to_app_name(package_name: Optional[str]) -> Optional[str]:
    """Readable app name for an Android package."""
    if not package_name:
        return None
    if package_name in PACKAGE_NAMES:
        return PACKAGE_NAMES[package_name]

    parts = package_name.split(".")
    last = parts[-1]
    if last == "android" and len(parts) > 1:
        last = parts[-2]
    return last[:1].upper() + last[1:]


def is_system_package(package_name: Optional[str]) -> bool:
    if not package_name:
        return True
    package = package_name.lower()
    if any(system in package for system in SYSTEM_PACKAGES):
        return True
    return package.startswith("com.android.") and any(
        word in package for word in ("launcher", "system", "settings")
    )


def is_system_app(app_name: Optional[str]) -> bool:
    if not app_name:
        return True
    name = app_name.lower()
    if any(fragment in name for fragment in SYSTEM_APP_FRAGMENTS):
        return True
    # Very short names are almost always system components
    return len(name) < 3
