"""JavaScript snippet generator for in-browser session tracking.

Generates the configuration tag embedded in the page and the client script
that buffers host events in localStorage and pushes them to the tracking API.
"""

import json
import re
from dataclasses import dataclass
from typing import Optional

from sessionlogs.errors import ConfigurationError

from .delivery import UNLOAD_PROMPT
from .models import (
    BROWSER_DATA_CHANNEL,
    CATEGORY_CHANNELS,
    CATEGORY_PAYLOAD_KEYS,
    INTERNAL_CHANNELS,
    LAST_EVENT_CHANNEL,
    DeliveryConfig,
    EventCategory,
)

CONFIG_TAG_ID = "sessionlogs-tracking"

_CONFIG_TAG_RE = re.compile(
    r'<script[^>]*data-for="sessionlogs"[^>]*>(?P<body>.*?)</script>',
    re.DOTALL | re.IGNORECASE,
)


@dataclass
class SnippetConfig:
    """Configuration for the tracking snippet."""

    # Host events listened to on document
    input_event: str = "shiny:inputchanged"
    error_event: str = "shiny:error"
    value_event: str = "shiny:value"

    # Upload options
    api_prefix: str = "/api/v1/tracking"
    unload_prompt: str = UNLOAD_PROMPT


def render_config_tag(config: DeliveryConfig) -> str:
    """Render the JSON configuration document embedded in the page."""
    # Keep "</script>" in user-provided regexes from closing the tag
    body = config.to_json().replace("</", "<\\/")
    return (
        f'<script id="{CONFIG_TAG_ID}" type="application/json" data-for="sessionlogs">'
        f"{body}</script>"
    )


def read_config_tag(page: str) -> str:
    """Extract the first configuration document from a rendered page.

    Raises:
        ConfigurationError: If the page has no configuration tag
    """
    match = _CONFIG_TAG_RE.search(page)
    if match is None:
        raise ConfigurationError("Page has no sessionlogs configuration tag")
    return match.group("body")


class TrackingSnippetGenerator:
    """Generates the browser client for session tracking."""

    def __init__(self, config: Optional[SnippetConfig] = None):
        """Initialize generator with configuration.

        Args:
            config: Snippet configuration
        """
        self.config = config or SnippetConfig()

    def generate_inline_snippet(self, base_url: str = "") -> str:
        """Generate inline JavaScript client.

        Args:
            base_url: Origin of the tracking API ("" for same origin)

        Returns:
            JavaScript code to embed in the page after the configuration tag
        """
        config = self.config
        endpoint = f"{base_url.rstrip('/')}{config.api_prefix}"
        channels = json.dumps({c.value: CATEGORY_CHANNELS[c] for c in EventCategory})
        payload_keys = json.dumps({c.value: CATEGORY_PAYLOAD_KEYS[c] for c in EventCategory})
        dont_track = json.dumps(sorted(INTERNAL_CHANNELS))

        return f'''<script>
(function() {{
  var tag = document.querySelector('script[data-for="sessionlogs"]');
  if (!tag) return;
  var config;
  try {{
    config = JSON.parse(tag.innerHTML);
  }} catch (err) {{
    console.error("[sessionlogs] Invalid configuration, tracking disabled:", err);
    return;
  }}

  var SESSION_URL = "{endpoint}/sessions/" + config.sessionid;
  var ENDPOINT = SESSION_URL + "/inputs";
  var CHANNELS = {channels};
  var PAYLOAD_KEYS = {payload_keys};
  var DONT_TRACK = {dont_track};
  var EXCLUDE_IDS = config.exclude_input_id || [];
  var EXCLUDE_REGEX = config.exclude_input_regex ? new RegExp(config.exclude_input_regex) : null;
  var HIDDEN = /hidden$/;
  var memoryOnly = false;
  var buffer = {{input: [], error: [], output: []}};

  function storageKey(category) {{
    return "sessionlogs:" + config.sessionid + ":" + category;
  }}

  Object.keys(buffer).forEach(function(category) {{
    try {{
      buffer[category] = JSON.parse(window.localStorage.getItem(storageKey(category))) || [];
    }} catch (err) {{
      buffer[category] = [];
    }}
  }});

  function append(category, event) {{
    var last = buffer[category][buffer[category].length - 1];
    if (last && event.timestamp <= last.timestamp) {{
      event.timestamp = last.timestamp + 0.001;
    }}
    buffer[category].push(event);
    if (memoryOnly) return;
    try {{
      window.localStorage.setItem(storageKey(category), JSON.stringify(buffer[category]));
    }} catch (err) {{
      memoryOnly = true;
      console.warn("[sessionlogs] Storage quota exceeded, buffering in memory only");
    }}
  }}

  function push(name, value, priority, sync) {{
    var body = JSON.stringify({{name: name, value: value, priority: priority || "value"}});
    if (sync && navigator.sendBeacon) {{
      navigator.sendBeacon(ENDPOINT, new Blob([body], {{type: "application/json"}}));
      return;
    }}
    fetch(ENDPOINT, {{
      method: "POST",
      headers: {{"Content-Type": "application/json"}},
      body: body,
      keepalive: true
    }}).catch(function(err) {{
      console.error("[sessionlogs] Push failed:", err);
    }});
  }}

  function pushSnapshot(category, sync) {{
    var value = {{}};
    value[PAYLOAD_KEYS[category]] = JSON.stringify(buffer[category]);
    push(CHANNELS[category], value, category === "input" ? "event" : "value", sync);
  }}

  function captured(category, event) {{
    append(category, event);
    if (config.logsonunload) return;
    pushSnapshot(category);
    var last = Object.assign({{category: category}}, event);
    push("{LAST_EVENT_CHANNEL}", last, "event");
  }}

  function excludedInput(name) {{
    return EXCLUDE_IDS.indexOf(name) !== -1 ||
      (EXCLUDE_REGEX !== null && EXCLUDE_REGEX.test(name)) ||
      HIDDEN.test(name);
  }}

  $(document).on("{config.input_event}", function(event) {{
    if (DONT_TRACK.indexOf(event.name) !== -1 || excludedInput(event.name)) return;
    captured("input", {{name: event.name, timestamp: Date.now(), value: event.value, type: event.inputType}});
  }});

  $(document).on("{config.error_event}", function(event) {{
    if (DONT_TRACK.indexOf(event.name) !== -1) return;
    captured("error", {{name: event.name, timestamp: Date.now(), error: event.error.message}});
  }});

  $(document).on("{config.value_event}", function(event) {{
    if (DONT_TRACK.indexOf(event.name) !== -1) return;
    captured("output", {{name: event.name, timestamp: Date.now(), binding: event.binding.binding.name}});
  }});

  push("{BROWSER_DATA_CHANNEL}", {{
    user_agent: navigator.userAgent,
    screen_res: screen.width + "x" + screen.height,
    browser_res: window.innerWidth + "x" + window.innerHeight,
    pixel_ratio: String(window.devicePixelRatio),
    browser_connected: new Date().toISOString()
  }}, "event");

  var flushed = false;

  function flushAll() {{
    Object.keys(buffer).forEach(function(category) {{
      pushSnapshot(category, true);
    }});
    flushed = true;
  }}

  if (config.logsonunload) {{
    window.addEventListener("beforeunload", function(e) {{
      flushAll();
      e.returnValue = "{config.unload_prompt}";
      return "{config.unload_prompt}";
    }});
  }}

  // The page is going away for good: close the session on the server
  window.addEventListener("pagehide", function(e) {{
    if (e.persisted) return;
    if (config.logsonunload && !flushed) flushAll();
    if (navigator.sendBeacon) {{
      navigator.sendBeacon(SESSION_URL + "/end");
    }} else {{
      fetch(SESSION_URL + "/end", {{method: "POST", keepalive: true}});
    }}
  }});
}})();
</script>'''

    def generate_page_snippet(self, delivery_config: DeliveryConfig, base_url: str = "") -> str:
        """Generate the configuration tag followed by the client script.

        Args:
            delivery_config: Session configuration to embed
            base_url: Origin of the tracking API

        Returns:
            HTML to insert at the top of the page body
        """
        return render_config_tag(delivery_config) + "\n" + self.generate_inline_snippet(base_url)


def generate_snippet(
    format: str = "inline",
    delivery_config: Optional[DeliveryConfig] = None,
    base_url: str = "",
    config: Optional[SnippetConfig] = None,
) -> str:
    """Generate tracking snippet in specified format.

    Args:
        format: Snippet format ("inline", "config" or "page")
        delivery_config: Session configuration (required for "config" and "page")
        base_url: Origin of the tracking API
        config: Snippet configuration

    Returns:
        Generated snippet code
    """
    generator = TrackingSnippetGenerator(config)

    if format == "inline":
        return generator.generate_inline_snippet(base_url)
    elif format in ("config", "page"):
        if delivery_config is None:
            raise ValueError(f"Snippet format {format!r} needs a delivery configuration")
        if format == "config":
            return render_config_tag(delivery_config)
        return generator.generate_page_snippet(delivery_config, base_url)
    else:
        raise ValueError(f"Unknown snippet format: {format}")
