"""
In-page capture script.

Installed on the current document and on every future document of the page.
User interactions are pushed onto ``window.__captureActions`` (bounded,
oldest dropped first) until Python drains them with ``__captureDrain()``.
Events still buffered when a document unloads are parked in sessionStorage
and restored by the next install on the same origin.
"""

CAPTURE_SCRIPT = r"""
(() => {
    const LIMIT = %(limit)d;
    const STASH_KEY = '__captureBacklog';
    if (window.__captureDisabled) return;

    if (window.__captureTeardown) window.__captureTeardown();

    let buffer = window.__captureActions || [];
    let dropped = window.__captureDropped || 0;
    try {
        const stashed = window.sessionStorage.getItem(STASH_KEY);
        if (stashed) {
            buffer = JSON.parse(stashed).concat(buffer);
            window.sessionStorage.removeItem(STASH_KEY);
        }
    } catch (e) {}
    window.__captureActions = buffer;
    window.__captureDropped = dropped;

    let counter = 0;
    function nextId() {
        counter += 1;
        return 'action_' + Date.now() + '_' + counter + '_' + Math.random().toString(36).slice(2, 7);
    }

    function describe(node, depth) {
        if (!node || !node.tagName) return null;
        const attributes = {};
        for (const attr of node.attributes) attributes[attr.name] = attr.value;
        const parentEl = node.parentElement;
        let siblingIndex = null, typeIndex = null;
        if (parentEl) {
            const children = Array.from(parentEl.children);
            siblingIndex = children.indexOf(node) + 1;
            typeIndex = children.filter(c => c.tagName === node.tagName).indexOf(node) + 1;
        }
        const tag = node.tagName.toLowerCase();
        return {
            tagName: tag,
            attributes: attributes,
            text: depth === 0 ? (node.innerText || node.textContent || '').trim().slice(0, 200) : '',
            siblingIndex: siblingIndex,
            typeIndex: typeIndex,
            parent: (depth < 12 && parentEl && tag !== 'body') ? describe(parentEl, depth + 1) : null,
        };
    }

    function localSelector(el) {
        if (!el || !el.tagName || el === document.body) return 'body';
        if (el.id) return '#' + CSS.escape(el.id);
        const testId = el.getAttribute('data-testid');
        if (testId) return '[data-testid="' + testId.replace(/"/g, '\\"') + '"]';
        const name = el.getAttribute('name');
        if (name) return el.tagName.toLowerCase() + '[name="' + name.replace(/"/g, '\\"') + '"]';
        const path = [];
        let current = el;
        while (current && current !== document.body && current.tagName) {
            let segment = current.tagName.toLowerCase();
            if (current.id) {
                path.unshift('#' + CSS.escape(current.id));
                break;
            }
            if (current.parentElement) {
                const same = Array.from(current.parentElement.children).filter(c => c.tagName === current.tagName);
                if (same.length > 1) segment += ':nth-of-type(' + (same.indexOf(current) + 1) + ')';
            }
            path.unshift(segment);
            current = current.parentElement;
        }
        return path.slice(-3).join(' > ') || 'body';
    }

    function push(type, el, extra) {
        const event = Object.assign({
            id: nextId(),
            type: type,
            selector: localSelector(el),
            element: el && el.tagName ? describe(el, 0) : null,
            url: location.href,
            timestamp: Date.now(),
        }, extra || {});
        buffer.push(event);
        if (buffer.length > LIMIT) {
            const excess = buffer.length - LIMIT;
            buffer.splice(0, excess);
            dropped += excess;
            window.__captureDropped = dropped;
        }
    }

    function onClick(e) {
        push('click', e.target, { coordinates: { x: e.clientX, y: e.clientY } });
    }
    function onDoubleClick(e) {
        push('double-click', e.target, { coordinates: { x: e.clientX, y: e.clientY } });
    }
    function onContextMenu(e) {
        push('right-click', e.target, { coordinates: { x: e.clientX, y: e.clientY } });
    }
    function onInput(e) {
        const el = e.target;
        if (!el || el.tagName === 'SELECT') return;
        if (el.tagName === 'INPUT' || el.tagName === 'TEXTAREA' || el.isContentEditable) {
            const value = el.isContentEditable ? el.innerText : el.value;
            push('input', el, { value: value });
        }
    }
    function onChange(e) {
        if (e.target && e.target.tagName === 'SELECT') {
            push('select', e.target, { value: e.target.value });
        }
    }
    function onSubmit(e) {
        push('custom', e.target, { metadata: { event: 'submit' } });
    }
    function onKeyDown(e) {
        if (['Enter', 'Tab', 'Escape'].includes(e.key)) {
            push('key-press', e.target, { value: e.key });
        }
    }

    let scrollTimer = null;
    function onScroll() {
        if (scrollTimer) clearTimeout(scrollTimer);
        scrollTimer = setTimeout(() => {
            push('scroll', document.body, { coordinates: { x: window.scrollX, y: window.scrollY } });
        }, 250);
    }

    let dragSource = null;
    function onDragStart(e) {
        dragSource = e.target;
    }
    function onDrop(e) {
        if (!dragSource) return;
        push('drag-drop', dragSource, {
            value: localSelector(e.target),
            coordinates: { x: e.clientX, y: e.clientY },
        });
        dragSource = null;
    }

    function onPageHide() {
        try {
            if (buffer.length) window.sessionStorage.setItem(STASH_KEY, JSON.stringify(buffer.slice(-LIMIT)));
        } catch (e) {}
    }

    const documentListeners = [
        ['click', onClick], ['dblclick', onDoubleClick], ['contextmenu', onContextMenu],
        ['input', onInput], ['change', onChange], ['submit', onSubmit],
        ['keydown', onKeyDown], ['dragstart', onDragStart], ['drop', onDrop],
    ];
    for (const [name, handler] of documentListeners) document.addEventListener(name, handler, true);
    window.addEventListener('scroll', onScroll, true);
    window.addEventListener('pagehide', onPageHide);

    window.__captureDrain = () => {
        const events = buffer.splice(0, buffer.length);
        const lost = dropped;
        dropped = 0;
        window.__captureDropped = 0;
        return { events: events, dropped: lost };
    };

    window.__captureTeardown = () => {
        for (const [name, handler] of documentListeners) document.removeEventListener(name, handler, true);
        window.removeEventListener('scroll', onScroll, true);
        window.removeEventListener('pagehide', onPageHide);
        if (scrollTimer) clearTimeout(scrollTimer);
        delete window.__captureTeardown;
    };
})();
"""

TEARDOWN_JS = """
() => {
    window.__captureDisabled = true;
    if (window.__captureTeardown) window.__captureTeardown();
    try { window.sessionStorage.removeItem('__captureBacklog'); } catch (e) {}
}
"""


def build_capture_script(limit: int) -> str:
    return CAPTURE_SCRIPT % {"limit": int(limit)}
