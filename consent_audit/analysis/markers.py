"""
Marker tables for third-party content detection.

Literal substrings that reveal a service in served HTML (matched
case-insensitively), the regexes that pull tracking identifiers out
of inline snippets, the script-loading patterns counted for
duplicate-analytics detection, and the slug -> vendor/domain tables
used when projecting detections into the export schema.
"""

from __future__ import annotations

import dataclasses
import re

# ============================================================================
# Service Markers
# ============================================================================

SOCIAL_MEDIA_MARKERS: dict[str, tuple[str, ...]] = {
    "facebook": ("fbq(", "connect.facebook.net", "www.facebook.com/plugins", "fb-root", "Facebook Pixel Code", "facebook.com/plugins"),
    "instagram": ("instagram.com/embed", "instagram.com/p/", "platform.instagram.com", "instawidget.net"),
    "twitter": ("platform.twitter.com", "twitter-widgets.js", "ads-twitter.com", "twitter.com/intent"),
    "linkedin": ("platform.linkedin.com", "linkedin.com/embed", "snap.licdn.com", "insight.min.js"),
    "pinterest": ("assets.pinterest.com", "pinterest.com/pin/create"),
    "tiktok": ("tiktok.com/embed", "analytics.tiktok.com", "www.tiktok.com/embed"),
    "snapchat": ("snapchat.com", "sc-static.net"),
    "disqus": ("disqus.com",),
}

THIRDPARTY_MARKERS: dict[str, tuple[str, ...]] = {
    "youtube": ("youtube.com/embed", "youtube-nocookie.com", "youtube.com/iframe_api", "youtu.be/", "www.youtube.com/watch"),
    "vimeo": ("player.vimeo.com", "i.vimeocdn.com"),
    "google-maps": ("maps.google.com", "google.com/maps", "maps.googleapis.com", "new google.maps.", "wp-google-maps"),
    "google-recaptcha": ("google.com/recaptcha", "grecaptcha", "recaptcha/api", "recaptcha.js"),
    "google-fonts": ("fonts.googleapis.com", "fonts.gstatic.com"),
    "spotify": ("open.spotify.com/embed",),
    "soundcloud": ("w.soundcloud.com/player", "api.soundcloud.com"),
    "dailymotion": ("dailymotion.com/embed",),
    "hubspot": ("js.hs-scripts.com", "js.hsforms.net", "hbspt.forms.create", "track.hubspot.com", "js.hs-analytics.net"),
    "calendly": ("assets.calendly.com", "calendly.com/widget"),
    "typeform": ("embed.typeform.com",),
    "intercom": ("widget.intercom.io", "js.intercomcdn.com", "Intercom("),
    "hotjar": ("static.hotjar.com", "script.hotjar.com"),
    "livechat": ("cdn.livechatinc.com",),
    "openstreetmaps": ("openstreetmap.org",),
    "paypal": ("www.paypal.com/tagmanager", "www.paypalobjects.com", "paypal.com/sdk"),
    "stripe": ("js.stripe.com",),
    "addthis": ("addthis.com", "s7.addthis.com"),
    "addtoany": ("static.addtoany.com",),
    "sharethis": ("sharethis.com",),
    "microsoft-ads": ("bat.bing.com",),
    "microsoft-clarity": ("clarity.ms",),
    "adobe-fonts": ("p.typekit.net", "use.typekit.net"),
    "twitch": ("player.twitch.tv", "embed.twitch.tv"),
    "wistia": ("fast.wistia.com", "wistia.net"),
    "loom": ("loom.com/embed",),
    "apple-podcasts": ("embed.podcasts.apple.com",),
    "tawk-to": ("embed.tawk.to",),
    "drift": ("js.driftt.com",),
    "crisp": ("client.crisp.chat",),
    "tidio": ("code.tidio.co",),
    "cloudflare-turnstile": ("challenges.cloudflare.com/turnstile",),
    "hcaptcha": ("hcaptcha.com", "js.hcaptcha.com"),
}

STATS_MARKERS: dict[str, tuple[str, ...]] = {
    "google-analytics": (
        "google-analytics.com/ga.js",
        "www.google-analytics.com/analytics.js",
        "_getTracker",
        "gtag('js'",
        'gtag("js"',
        "googletagmanager.com/gtag/js",
    ),
    "google-tag-manager": ("gtm.start", "gtm.js", "googletagmanager.com/gtm.js"),
    "matomo": ("piwik.js", "matomo.js", "matomo.cloud"),
    "clicky": ("static.getclicky.com/js", "clicky_site_ids"),
    "yandex": ("mc.yandex.ru/metrika/watch.js", "mc.yandex.ru/metrika/tag.js"),
    "clarity": ("clarity.ms/tag/",),
    "plausible": ("plausible.io/js",),
    "fathom": ("cdn.usefathom.com",),
    "heap": ("cdn.heapanalytics.com",),
    "mixpanel": ("cdn.mxpnl.com",),
    "amplitude": ("cdn.amplitude.com",),
    "segment": ("cdn.segment.com/analytics.js",),
}

# ============================================================================
# Tracking Identifier Patterns
# ============================================================================


@dataclasses.dataclass(frozen=True)
class TrackingIdPattern:
    """Regex for one identifier family.

    ``group`` selects the identifier inside the match; ``prefix`` is
    what survives redaction (empty for purely numeric identifiers).
    """

    type: str
    service: str
    regex: re.Pattern[str]
    prefix: str
    group: int = 0


TRACKING_ID_PATTERNS: tuple[TrackingIdPattern, ...] = (
    TrackingIdPattern("gtm", "Google Tag Manager", re.compile(r"GTM-[A-Z0-9]{4,8}"), "GTM-"),
    TrackingIdPattern("ga4", "Google Analytics 4", re.compile(r"G-[A-Z0-9]{6,12}"), "G-"),
    TrackingIdPattern("ua", "Universal Analytics", re.compile(r"UA-[0-9]{4,10}-[0-9]{1,4}"), "UA-"),
    TrackingIdPattern("google-ads", "Google Ads", re.compile(r"AW-[0-9]{8,12}"), "AW-"),
    TrackingIdPattern(
        "facebook-pixel",
        "Facebook Pixel",
        re.compile(r"""fbq\s*\(\s*['"]init['"]\s*,\s*['"]([0-9]{14,17})['"]"""),
        "",
        group=1,
    ),
    TrackingIdPattern("hotjar", "Hotjar", re.compile(r"h\._hjSettings\s*.*?hjid\s*:\s*([0-9]{6,8})"), "", group=1),
    TrackingIdPattern("clarity", "Microsoft Clarity", re.compile(r"clarity\.ms/tag/([a-z0-9]+)"), "", group=1),
    TrackingIdPattern("matomo", "Matomo", re.compile(r"""setSiteId\s*['",\s]*([0-9]{1,6})"""), "", group=1),
)

@dataclasses.dataclass(frozen=True)
class ConfigIdPrefix:
    """Identifier prefix looked for in stored options and theme templates."""

    prefix: str
    service: str
    category: str
    regex: re.Pattern[str]


def _config_prefix(prefix: str, service: str, category: str) -> ConfigIdPrefix:
    return ConfigIdPrefix(prefix, service, category, re.compile(rf"\b{re.escape(prefix)}[A-Z0-9]{{4,15}}", re.IGNORECASE))


CONFIG_ID_PREFIXES: tuple[ConfigIdPrefix, ...] = (
    _config_prefix("UA-", "Google Universal Analytics", "analytics"),
    _config_prefix("G-", "Google Analytics 4", "analytics"),
    _config_prefix("GTM-", "Google Tag Manager", "analytics"),
    _config_prefix("AW-", "Google Ads", "marketing"),
    _config_prefix("DC-", "DoubleClick / Floodlight", "marketing"),
)


def redact(prefix: str) -> str:
    """Redacted form of an identifier: its prefix followed by ``***``."""
    return f"{prefix}***"


# ============================================================================
# Duplicate Analytics Families
# ============================================================================

# Raw occurrence counts of these substrings are summed per family; a sum
# above one flags the family as loaded twice.  A single tag that spells
# its loader URL twice (inline fallbacks, noscript copies) is counted
# twice as well.
DOUBLE_STATS_FAMILIES: dict[str, tuple[str, ...]] = {
    "Google Analytics": ("ga.js", "analytics.js", "gtag/js"),
    "Google Tag Manager": ("gtm.js",),
    "Matomo": ("piwik.js", "matomo.js"),
    "Clicky": ("getclicky.com/js",),
}

# ============================================================================
# Export Tables
# ============================================================================

VENDOR_NAMES: dict[str, str] = {
    "google-analytics": "Google Analytics",
    "google-tag-manager": "Google Tag Manager",
    "facebook": "Facebook / Meta",
    "instagram": "Instagram / Meta",
    "twitter": "X (Twitter)",
    "linkedin": "LinkedIn",
    "pinterest": "Pinterest",
    "tiktok": "TikTok",
    "snapchat": "Snapchat",
    "disqus": "Disqus",
    "youtube": "YouTube / Google",
    "vimeo": "Vimeo",
    "google-maps": "Google Maps",
    "google-recaptcha": "Google reCAPTCHA",
    "google-fonts": "Google Fonts",
    "spotify": "Spotify",
    "soundcloud": "SoundCloud",
    "dailymotion": "Dailymotion",
    "hubspot": "HubSpot",
    "calendly": "Calendly",
    "typeform": "Typeform",
    "intercom": "Intercom",
    "hotjar": "Hotjar",
    "livechat": "LiveChat",
    "openstreetmaps": "OpenStreetMap",
    "paypal": "PayPal",
    "stripe": "Stripe",
    "addthis": "AddThis",
    "addtoany": "AddToAny",
    "sharethis": "ShareThis",
    "microsoft-ads": "Microsoft Advertising",
    "microsoft-clarity": "Microsoft Clarity",
    "clarity": "Microsoft Clarity",
    "adobe-fonts": "Adobe Fonts",
    "twitch": "Twitch",
    "wistia": "Wistia",
    "loom": "Loom",
    "apple-podcasts": "Apple Podcasts",
    "tawk-to": "Tawk.to",
    "drift": "Drift",
    "crisp": "Crisp",
    "tidio": "Tidio",
    "cloudflare-turnstile": "Cloudflare Turnstile",
    "hcaptcha": "hCaptcha",
    "matomo": "Matomo",
    "clicky": "Clicky",
    "yandex": "Yandex Metrica",
    "plausible": "Plausible Analytics",
    "fathom": "Fathom Analytics",
    "heap": "Heap Analytics",
    "mixpanel": "Mixpanel",
    "amplitude": "Amplitude",
    "segment": "Segment",
}

SERVICE_DOMAINS: dict[str, str] = {
    "google-analytics": "www.google-analytics.com",
    "google-tag-manager": "www.googletagmanager.com",
    "facebook": "www.facebook.com",
    "instagram": "www.instagram.com",
    "twitter": "platform.twitter.com",
    "linkedin": "www.linkedin.com",
    "pinterest": "www.pinterest.com",
    "tiktok": "www.tiktok.com",
    "snapchat": "www.snapchat.com",
    "disqus": "disqus.com",
    "youtube": "www.youtube.com",
    "vimeo": "player.vimeo.com",
    "google-maps": "maps.googleapis.com",
    "google-recaptcha": "www.google.com",
    "google-fonts": "fonts.googleapis.com",
    "spotify": "open.spotify.com",
    "soundcloud": "soundcloud.com",
    "dailymotion": "www.dailymotion.com",
    "hubspot": "js.hs-scripts.com",
    "calendly": "calendly.com",
    "typeform": "embed.typeform.com",
    "intercom": "widget.intercom.io",
    "hotjar": "static.hotjar.com",
    "livechat": "cdn.livechatinc.com",
    "openstreetmaps": "tile.openstreetmap.org",
    "paypal": "www.paypal.com",
    "stripe": "js.stripe.com",
    "addthis": "s7.addthis.com",
    "addtoany": "static.addtoany.com",
    "sharethis": "platform-api.sharethis.com",
    "microsoft-ads": "bat.bing.com",
    "microsoft-clarity": "www.clarity.ms",
    "clarity": "www.clarity.ms",
    "adobe-fonts": "use.typekit.net",
    "twitch": "embed.twitch.tv",
    "wistia": "fast.wistia.com",
    "loom": "www.loom.com",
    "apple-podcasts": "embed.podcasts.apple.com",
    "tawk-to": "embed.tawk.to",
    "drift": "js.driftt.com",
    "crisp": "client.crisp.chat",
    "tidio": "code.tidio.co",
    "cloudflare-turnstile": "challenges.cloudflare.com",
    "hcaptcha": "js.hcaptcha.com",
    "matomo": "cdn.matomo.cloud",
    "clicky": "static.getclicky.com",
    "yandex": "mc.yandex.ru",
    "plausible": "plausible.io",
    "fathom": "cdn.usefathom.com",
    "heap": "cdn.heapanalytics.com",
    "mixpanel": "cdn.mxpnl.com",
    "amplitude": "cdn.amplitude.com",
    "segment": "cdn.segment.com",
}

IFRAME_SERVICES: tuple[str, ...] = (
    "youtube",
    "vimeo",
    "google-maps",
    "spotify",
    "soundcloud",
    "dailymotion",
    "twitch",
    "wistia",
    "loom",
    "apple-podcasts",
    "calendly",
    "typeform",
)


@dataclasses.dataclass(frozen=True)
class PixelService:
    domain: str
    type: str
    category: str


PIXEL_SERVICES: dict[str, PixelService] = {
    "facebook": PixelService("www.facebook.com", "img", "marketing"),
    "google-analytics": PixelService("www.google-analytics.com", "beacon", "analytics"),
    "linkedin": PixelService("px.ads.linkedin.com", "img", "marketing"),
    "pinterest": PixelService("ct.pinterest.com", "img", "marketing"),
    "tiktok": PixelService("analytics.tiktok.com", "img", "marketing"),
    "microsoft-ads": PixelService("bat.bing.com", "img", "marketing"),
    "microsoft-clarity": PixelService("c.clarity.ms", "img", "analytics"),
    "clarity": PixelService("c.clarity.ms", "img", "analytics"),
    "hotjar": PixelService("vars.hotjar.com", "img", "analytics"),
    "snapchat": PixelService("tr.snapchat.com", "img", "marketing"),
}


def vendor_name(slug: str) -> str:
    """Human-readable vendor for a service slug."""
    return VENDOR_NAMES.get(slug) or slug.replace("-", " ").capitalize()
