"""
Page collector injected into every scanned page.

Waits for third-party scripts to settle (cookie and storage counts
stable for two consecutive polls, or the maximum wait reached), posts
cookie *names* and storage keys to the evidence endpoint, then tells
the orchestrator the page is done through an exposed binding.  Cookie
values never leave the page.
"""

from __future__ import annotations

import json

SIGNAL_BINDING = "__consentAuditSignal"
TOKEN_PARAM = "consent_audit_token"
SCAN_ID_PARAM = "consent_audit_scan_id"

INITIAL_DELAY_MS = 2000
MAX_DELAY_MS = 8000
POLL_INTERVAL_MS = 500
STABLE_READS = 2

_COLLECTOR_TEMPLATE = """
(() => {
    if (window.top !== window) return;
    const params = new URLSearchParams(window.location.search);
    const scanId = params.get(__SCAN_ID_PARAM__);
    if (!scanId) return;
    const token = params.get(__TOKEN_PARAM__) || '';

    const countCookies = () => (document.cookie ? document.cookie.split(';').length : 0);
    const countStorage = () => {
        try { return localStorage.length + sessionStorage.length; } catch (e) { return 0; }
    };
    const storageKeys = (store) => {
        const keys = [];
        try { for (let i = 0; i < store.length; i++) keys.push(store.key(i)); } catch (e) {}
        return keys;
    };
    const cookieNames = () => {
        const seen = new Set();
        const cookies = [];
        if (!document.cookie) return cookies;
        for (const part of document.cookie.split(';')) {
            const pieces = part.trim().split('=');
            let name = pieces[0];
            try { name = decodeURIComponent(name); } catch (e) {}
            if (!name || seen.has(name)) continue;
            seen.add(name);
            cookies.push({ name, hasValue: pieces.length > 1 && pieces[1] !== '' });
        }
        return cookies;
    };

    const signal = () => {
        try { window[__BINDING__]({ type: 'scan_complete', scanId }); } catch (e) {}
    };

    const collectAndSend = async () => {
        const payload = {
            scanId,
            token,
            cookies: cookieNames(),
            localStorage: storageKeys(window.localStorage),
            sessionStorage: storageKeys(window.sessionStorage),
        };
        try {
            await fetch(__EVIDENCE_URL__, {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify(payload),
            });
        } catch (e) {
        } finally {
            signal();
        }
    };

    window.addEventListener('load', () => {
        const started = Date.now();
        let lastCookies = 0;
        let lastStorage = 0;
        let stable = 0;
        const poll = () => {
            const cookies = countCookies();
            const storage = countStorage();
            if (cookies === lastCookies && storage === lastStorage) {
                stable++;
            } else {
                stable = 0;
                lastCookies = cookies;
                lastStorage = storage;
            }
            if (stable >= __STABLE_READS__ || Date.now() - started >= __MAX_DELAY__) {
                collectAndSend();
                return;
            }
            setTimeout(poll, __POLL_INTERVAL__);
        };
        setTimeout(poll, __INITIAL_DELAY__);
    });
})();
"""


def build_collector_script(evidence_url: str) -> str:
    """Collector source posting to *evidence_url*.

    The script does nothing unless the page URL carries a scan id, so
    normal browsing in the same context is unaffected.
    """
    replacements = {
        "__SCAN_ID_PARAM__": json.dumps(SCAN_ID_PARAM),
        "__TOKEN_PARAM__": json.dumps(TOKEN_PARAM),
        "__BINDING__": json.dumps(SIGNAL_BINDING),
        "__EVIDENCE_URL__": json.dumps(evidence_url),
        "__STABLE_READS__": str(STABLE_READS),
        "__MAX_DELAY__": str(MAX_DELAY_MS),
        "__POLL_INTERVAL__": str(POLL_INTERVAL_MS),
        "__INITIAL_DELAY__": str(INITIAL_DELAY_MS),
    }
    script = _COLLECTOR_TEMPLATE
    for placeholder, value in replacements.items():
        script = script.replace(placeholder, value)
    return script
