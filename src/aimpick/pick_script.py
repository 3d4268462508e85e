"""In-page pick-mode controller and the host helpers that drive it.

The page script keeps its state in one object, ``window.__aimPick``, which
exposes only commands (install/toggle/undo/remove/finish/cancel) and a
``snapshot()`` for the host. Input interception follows a single policy:
while pick mode is on, pointer and click events aimed outside the panel
are suppressed unless Ctrl or Meta is held, and a click commits a
selection.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from aimpick.constants import DEFAULT_BROWSER_PROFILE_TEXT, PROFILE_NAME_RE
from aimpick.models import Selection
from aimpick.selector_synth import selector_script


PICKER_KEYS = {
    "toggle": "F8",
    "finish": "F9",
    "cancel": "Escape",
    "undo": "Backspace",
}

SUPPRESSED_EVENTS = ("pointerdown", "mousedown", "touchstart", "click")

INSTALL_JS = "() => { if (!window.__aimPick) return false; window.__aimPick.install(); return true; }"
SNAPSHOT_JS = "() => window.__aimPick ? window.__aimPick.snapshot() : null"
TERMINAL_JS = "() => !!window.__aimPick && window.__aimPick.isTerminal()"

PICKER_JS = r"""
(() => {
  if (window.__aimPick) return;
  const CFG = __CFG_JSON__;
  const NAME_RE = new RegExp(CFG.nameRe);
  const SELECTED_CLASS = '__aim_selected_outline';
  const PROFILE_CLASS = '__aim_profile_outline';
  const RESUME_KEY = '__aim_pick_resume';
__SELECTOR_FUNCTIONS__

  function safeParseJson(s, def) { try { return JSON.parse(String(s)); } catch (e) { return def; } }
  function esc(s) { return String(s || '').replace(/&/g, '&amp;').replace(/</g, '&lt;').replace(/>/g, '&gt;'); }
  function escAttr(s) { return esc(s).replace(/"/g, '&quot;'); }
  function validName(s) { return NAME_RE.test(String(s || '')); }

  async function callHost(name, arg) {
    const fn = window[name];
    if (typeof fn !== 'function') return null;
    try { return await (arg === undefined ? fn() : fn(arg)); } catch (e) { return 'ERR: ' + e; }
  }
  async function getConfig() { return safeParseJson(await callHost('aimGetConfig'), null); }

  const session = { active: false, pickModeOn: false, selections: [], done: false, canceled: false };
  let tab = 'sites';
  let bypassHeld = false;
  let listening = false;

  const isTerminal = () => session.done || session.canceled;
  const hasBypass = (e) => !!(e && (e.ctrlKey || e.metaKey));
  const guarding = () => session.active && !isTerminal() && !bypassHeld;

  (function guardNavigation() {
    const _open = window.open;
    window.open = function () { if (guarding()) return null; return _open.apply(this, arguments); };
    try {
      const _assign = location.assign.bind(location);
      const _replace = location.replace.bind(location);
      location.assign = function (u) { if (guarding()) return; return _assign(u); };
      location.replace = function (u) { if (guarding()) return; return _replace(u); };
    } catch (e) {}
    const _push = history.pushState.bind(history);
    const _rep = history.replaceState.bind(history);
    history.pushState = function () { if (guarding()) return; return _push.apply(history, arguments); };
    history.replaceState = function () { if (guarding()) return; return _rep.apply(history, arguments); };
  })();

  function panelEl() { return document.getElementById('__aim_panel'); }
  function inPanel(el) {
    const panel = panelEl();
    return !!(el && panel && (panel === el || panel.contains(el)));
  }
  function isEditable(el) {
    return !!(el && (el.isContentEditable || /^(input|textarea|select)$/i.test(el.tagName || '')));
  }
  function eventTarget(e) {
    let t = e.target;
    if (t && t.nodeType === 3) t = t.parentElement;
    if (t instanceof Element) return t;
    if (typeof e.clientX === 'number') return document.elementFromPoint(e.clientX, e.clientY);
    return null;
  }
  function stop(e) {
    e.preventDefault();
    e.stopPropagation();
    if (e.stopImmediatePropagation) e.stopImmediatePropagation();
  }

  function shouldSuppress(e) {
    if (!session.active || isTerminal() || !session.pickModeOn) return false;
    if (hasBypass(e)) return false;
    const el = eventTarget(e);
    return !!el && !inPanel(el);
  }

  function setHighlight(selector, on) {
    try {
      const el = document.querySelector(selector);
      if (!el) return;
      if (on) el.classList.add(SELECTED_CLASS);
      else if (!session.selections.some(s => s.selector === selector)) el.classList.remove(SELECTED_CLASS);
    } catch (e) {}
  }

  function commit(el) {
    const selector = buildSelector(el);
    if (!selector) return;
    let outerHtml = '';
    try { outerHtml = el.outerHTML || ''; } catch (e) {}
    session.selections.push({
      selector,
      tag: (el.tagName || '').toLowerCase(),
      kind: guessKind(el),
      text: textSnippet(el),
      src: getSrc(el),
      href: getHref(el),
      outerHtml,
    });
    try { el.classList.add(SELECTED_CLASS); } catch (e) {}
    renderChrome();
  }

  function filterEvent(e) {
    bypassHeld = hasBypass(e);
    if (!shouldSuppress(e)) return;
    stop(e);
    if (e.type === 'click') commit(eventTarget(e));
  }

  function onMove(e) {
    bypassHeld = hasBypass(e);
    if (!session.active || isTerminal()) return;
    const overlay = document.getElementById('__aim_overlay');
    const label = document.getElementById('__aim_label');
    const el = eventTarget(e);
    if (!overlay || !label || !el || el === overlay || el === label || inPanel(el)) return;
    const r = el.getBoundingClientRect();
    overlay.style.left = r.left + 'px';
    overlay.style.top = r.top + 'px';
    overlay.style.width = r.width + 'px';
    overlay.style.height = r.height + 'px';
    label.textContent = buildSelector(el);
    label.style.left = Math.max(0, Math.min(r.left, window.innerWidth - 480)) + 'px';
    label.style.top = Math.max(0, r.top - 26) + 'px';
  }

  function onKey(e) {
    bypassHeld = hasBypass(e);
    if (!session.active || isTerminal()) return;
    const k = e.key;
    if (k === CFG.keys.toggle) { toggle(); stop(e); return; }
    if (k === CFG.keys.finish) { finish(); stop(e); return; }
    if (isEditable(e.target)) return;
    if (k === CFG.keys.cancel) { cancel(); stop(e); return; }
    if (k === CFG.keys.undo) { undo(); stop(e); }
  }

  function onKeyUp(e) { bypassHeld = hasBypass(e); }

  function listen() {
    if (listening) return;
    listening = true;
    const opts = { capture: true, passive: false };
    document.addEventListener('mousemove', onMove, true);
    CFG.suppressed.forEach(type => document.addEventListener(type, filterEvent, opts));
    document.addEventListener('keydown', onKey, true);
    document.addEventListener('keyup', onKeyUp, true);
    window.addEventListener('blur', () => { bypassHeld = false; });
  }

  function clearHover() {
    ['__aim_overlay', '__aim_label'].forEach(id => {
      const el = document.getElementById(id);
      if (el) el.style.display = 'none';
    });
  }

  function endSession() {
    try { sessionStorage.removeItem(RESUME_KEY); } catch (e) {}
    clearHover();
    updateModePill();
  }

  function install() {
    if (session.active) return;
    session.active = true;
    session.pickModeOn = true;
    session.done = false;
    session.canceled = false;
    try { sessionStorage.setItem(RESUME_KEY, '1'); } catch (e) {}
    ensureUI();
    listen();
    renderChrome();
    renderBody();
  }

  function toggle() {
    if (!session.active || isTerminal()) return;
    session.pickModeOn = !session.pickModeOn;
    updateModePill();
  }

  function undo() {
    if (!session.active || isTerminal() || !session.selections.length) return;
    const last = session.selections.pop();
    setHighlight(last.selector, false);
    renderChrome();
  }

  function remove(i) {
    if (!session.active || isTerminal()) return;
    if (i < 0 || i >= session.selections.length) return;
    const [gone] = session.selections.splice(i, 1);
    setHighlight(gone.selector, false);
    renderChrome();
  }

  function finish() {
    if (!session.active || isTerminal()) return;
    session.done = true;
    endSession();
  }

  function cancel() {
    if (!session.active || isTerminal()) return;
    session.canceled = true;
    endSession();
  }

  function snapshot() {
    return {
      active: session.active,
      pickModeOn: session.pickModeOn,
      done: session.done,
      canceled: session.canceled,
      selections: session.selections.map(s => Object.assign({}, s)),
    };
  }

  function ensureUI() {
    if (panelEl()) return;
    const style = document.createElement('style');
    style.id = '__aim_style';
    style.textContent = `
      #__aim_panel{position:fixed;top:0;right:0;width:460px;height:100vh;background:rgba(15,15,18,.94);color:#fff;z-index:2147483647;font:12px system-ui;border-left:1px solid rgba(255,255,255,.08);display:flex;flex-direction:column}
      #__aim_hdr{padding:10px;display:flex;gap:8px;align-items:center;border-bottom:1px solid rgba(255,255,255,.08)}
      #__aim_title{font-weight:700;flex:1}
      .__aim_btn{border:1px solid rgba(255,255,255,.14);background:rgba(255,255,255,.06);color:#fff;padding:6px 8px;border-radius:8px;cursor:pointer;user-select:none}
      .__aim_btn:hover{background:rgba(255,255,255,.10)}
      #__aim_help{padding:8px 10px;color:rgba(255,255,255,.75);border-bottom:1px solid rgba(255,255,255,.08);line-height:1.25}
      #__aim_tabs{display:flex;gap:8px;padding:10px;border-bottom:1px solid rgba(255,255,255,.08)}
      .__aim_tab{padding:6px 10px;border-radius:999px;border:1px solid rgba(255,255,255,.14);background:rgba(255,255,255,.06);cursor:pointer}
      .__aim_tab.active{background:rgba(255,255,255,.12)}
      #__aim_body{padding:10px;overflow:auto;flex:1}
      #__aim_panel .__aim_row{display:flex;gap:8px;align-items:center;margin-bottom:8px}
      #__aim_panel input,#__aim_panel select,#__aim_panel textarea{width:100%;box-sizing:border-box;padding:7px 8px;border-radius:10px;border:1px solid rgba(255,255,255,.14);background:rgba(255,255,255,.06);color:#fff}
      #__aim_panel textarea{min-height:84px;resize:vertical}
      .__aim_card{border:1px solid rgba(255,255,255,.12);border-radius:12px;background:rgba(255,255,255,.04);padding:10px;margin-bottom:10px}
      .__aim_k{opacity:.7;font-size:11px}
      .__aim_item{border:1px solid rgba(255,255,255,.12);border-radius:10px;padding:8px;margin-top:8px;background:rgba(255,255,255,.04)}
      .${SELECTED_CLASS}{outline:3px solid #22d3ee !important;outline-offset:2px !important}
      .${PROFILE_CLASS}{outline:2px dashed #a78bfa !important;outline-offset:2px !important}
      #__aim_overlay{position:fixed;z-index:2147483646;pointer-events:none;border:2px solid #00aaff;background:rgba(0,170,255,.08)}
      #__aim_label{position:fixed;z-index:2147483646;pointer-events:none;padding:4px 6px;border-radius:8px;background:rgba(0,0,0,.72);color:#fff;max-width:calc(100vw - 480px);overflow:hidden;text-overflow:ellipsis;white-space:nowrap}
      .__aim_badge{display:inline-block;padding:2px 8px;border-radius:999px;border:1px solid rgba(255,255,255,.16);background:rgba(255,255,255,.08);font-size:11px}
    `;
    document.documentElement.appendChild(style);

    const panel = document.createElement('div');
    panel.id = '__aim_panel';
    panel.innerHTML = `
      <div id="__aim_hdr">
        <div id="__aim_title">Aim Picker</div>
        <span class="__aim_badge" id="__aim_mode">PICK: ON</span>
        <span class="__aim_badge" id="__aim_count">0</span>
        <div class="__aim_btn" id="__aim_toggle">${esc(CFG.keys.toggle)}</div>
        <div class="__aim_btn" id="__aim_finish">Install</div>
        <div class="__aim_btn" id="__aim_cancel">Esc</div>
      </div>
      <div id="__aim_help">
        <b>Pick mode:</b> click selects (no navigation).<br>
        <b>Ctrl+Click</b> bypass &bull; <b>Backspace</b> undo &bull; <b>${esc(CFG.keys.finish)}</b> or <b>Install</b> exports picked items
      </div>
      <div id="__aim_tabs">
        <div class="__aim_tab active" data-tab="sites">Sites</div>
        <div class="__aim_tab" data-tab="select">Selection Profiles</div>
        <div class="__aim_tab" data-tab="picked">Picked</div>
      </div>
      <div id="__aim_body"></div>
    `;
    document.documentElement.appendChild(panel);

    const overlay = document.createElement('div');
    overlay.id = '__aim_overlay';
    document.documentElement.appendChild(overlay);
    const label = document.createElement('div');
    label.id = '__aim_label';
    document.documentElement.appendChild(label);

    panel.querySelector('#__aim_finish').addEventListener('click', finish);
    panel.querySelector('#__aim_cancel').addEventListener('click', cancel);
    panel.querySelector('#__aim_toggle').addEventListener('click', toggle);
    panel.querySelectorAll('.__aim_tab').forEach(t => {
      t.addEventListener('click', () => {
        panel.querySelectorAll('.__aim_tab').forEach(x => x.classList.remove('active'));
        t.classList.add('active');
        tab = t.getAttribute('data-tab');
        renderBody();
      });
    });
  }

  function updateModePill() {
    const pill = document.getElementById('__aim_mode');
    if (!pill) return;
    if (session.done) pill.textContent = 'DONE';
    else if (session.canceled) pill.textContent = 'CANCELED';
    else pill.textContent = session.pickModeOn ? 'PICK: ON' : 'PICK: OFF';
  }

  function renderChrome() {
    updateModePill();
    const count = document.getElementById('__aim_count');
    if (count) count.textContent = String(session.selections.length);
    if (tab === 'picked') renderBody();
  }

  function renderBody() {
    const body = document.getElementById('__aim_body');
    if (!body) return;
    if (tab === 'sites') return renderSites(body);
    if (tab === 'select') return renderSelectionProfiles(body);
    return renderPicked(body);
  }

  async function renderSites(body) {
    const cfg = await getConfig();
    body.innerHTML = '';
    const card = document.createElement('div');
    card.className = '__aim_card';
    card.innerHTML = `
      <div class="__aim_k">Browser Profile</div>
      <div class="__aim_row">
        <select id="__aim_browser_profile"></select>
        <div class="__aim_btn" id="__aim_bp_load">Load</div>
      </div>
      <div class="__aim_row">
        <input id="__aim_bp_new" placeholder="new profile name (letters/numbers/._-)" />
        <div class="__aim_btn" id="__aim_bp_new_btn">New</div>
      </div>
      <textarea id="__aim_bp_text" spellcheck="false"></textarea>
      <div class="__aim_row" style="margin-top:8px">
        <div class="__aim_btn" id="__aim_bp_save">Save Browser Profile</div>
        <div style="flex:1"></div>
        <span class="__aim_k" id="__aim_bp_status"></span>
      </div>
      <div class="__aim_k" style="margin-top:10px">URL</div>
      <div class="__aim_row">
        <input id="__aim_url" placeholder="https://...">
        <div class="__aim_btn" id="__aim_go">Go</div>
      </div>
      <div class="__aim_k" style="margin-top:8px">Saved URL Profiles</div>
      <div class="__aim_row">
        <select id="__aim_url_profile"></select>
        <div class="__aim_btn" id="__aim_use_profile">Use</div>
      </div>
      <div class="__aim_row">
        <input id="__aim_new_name" placeholder="URL profile name">
        <div class="__aim_btn" id="__aim_add">Add/Update</div>
      </div>
      <div class="__aim_row">
        <div class="__aim_btn" id="__aim_delete">Delete</div>
        <div style="flex:1"></div>
        <span class="__aim_k" id="__aim_status"></span>
      </div>
    `;
    body.appendChild(card);

    const bpSel = card.querySelector('#__aim_browser_profile');
    (cfg?.browserProfiles || ['default']).forEach(p => {
      const o = document.createElement('option');
      o.value = p;
      o.textContent = p;
      bpSel.appendChild(o);
    });
    bpSel.value = cfg?.currentBrowserProfile || 'default';
    const bpText = card.querySelector('#__aim_bp_text');
    const bpStatus = card.querySelector('#__aim_bp_status');
    const setBPStatus = (s) => { bpStatus.textContent = s || ''; };

    async function loadBP(name) {
      const raw = await callHost('aimLoadBrowserProfile', String(name || ''));
      bpText.value = raw && String(raw).trim().length ? String(raw) : CFG.defaultProfileText;
      setBPStatus(raw === null ? 'ERR: missing binding' : 'Loaded: ' + name);
    }
    card.querySelector('#__aim_bp_load').addEventListener('click', () => loadBP(bpSel.value));
    bpSel.addEventListener('change', () => loadBP(bpSel.value));
    await loadBP(bpSel.value);

    card.querySelector('#__aim_bp_new_btn').addEventListener('click', () => {
      bpText.value = CFG.defaultProfileText;
      setBPStatus('New profile: fill name then Save');
    });

    card.querySelector('#__aim_bp_save').addEventListener('click', async () => {
      const name = (card.querySelector('#__aim_bp_new').value || '').trim() || (bpSel.value || '').trim();
      if (!name) return setBPStatus('Missing profile name');
      if (!validName(name)) return setBPStatus('Invalid name (use letters/numbers/._-)');
      setBPStatus('Saving...');
      const res = await callHost('aimSaveBrowserProfile', JSON.stringify({ name, content: bpText.value || '' }));
      await renderSites(body);
      const status = document.getElementById('__aim_bp_status');
      const sel = document.getElementById('__aim_browser_profile');
      if (sel && Array.from(sel.options).some(o => o.value === name)) sel.value = name;
      if (status) status.textContent = res === null ? 'ERR: missing binding' : String(res);
    });

    const urlInput = card.querySelector('#__aim_url');
    urlInput.value = cfg?.currentUrl || location.href;
    const upSel = card.querySelector('#__aim_url_profile');
    const ups = Array.isArray(cfg?.urlProfiles) ? cfg.urlProfiles : [];
    ups.forEach(p => {
      const o = document.createElement('option');
      o.value = p.name || '';
      o.textContent = (p.name || '(unnamed)') + ' - ' + (p.url || '');
      upSel.appendChild(o);
    });
    const status = card.querySelector('#__aim_status');
    const setStatus = (s) => { status.textContent = s || ''; };
    const isHttp = (u) => u.startsWith('http://') || u.startsWith('https://');

    card.querySelector('#__aim_go').addEventListener('click', () => {
      const u = (urlInput.value || '').trim();
      if (!isHttp(u)) return setStatus('URL must start with http:// or https://');
      location.href = u;
    });
    card.querySelector('#__aim_use_profile').addEventListener('click', () => {
      const p = ups.find(x => (x.name || '') === upSel.value);
      if (!p) return;
      urlInput.value = p.url || '';
      setStatus('Loaded URL profile: ' + upSel.value);
    });
    async function saveUrlProfiles(profiles) {
      const res = await callHost('aimSaveUrlProfiles', JSON.stringify({ profiles }));
      await renderSites(body);
      const st = document.getElementById('__aim_status');
      if (st) st.textContent = res === null ? 'ERR: missing binding' : String(res);
    }
    card.querySelector('#__aim_add').addEventListener('click', async () => {
      const name = (card.querySelector('#__aim_new_name').value || '').trim();
      const u = (urlInput.value || '').trim();
      if (!name) return setStatus('Missing URL profile name');
      if (!validName(name)) return setStatus('Invalid name (use letters/numbers/._-)');
      if (!isHttp(u)) return setStatus('URL must start with http:// or https://');
      await saveUrlProfiles(ups.filter(x => (x.name || '') !== name).concat([{ name, url: u }]));
    });
    card.querySelector('#__aim_delete').addEventListener('click', async () => {
      const name = upSel.value;
      if (!name) return;
      await saveUrlProfiles(ups.filter(x => (x.name || '') !== name));
    });
  }

  function clearProfileHighlights() {
    try { document.querySelectorAll('.' + PROFILE_CLASS).forEach(el => el.classList.remove(PROFILE_CLASS)); } catch (e) {}
  }

  function applyProfileHighlights(items) {
    clearProfileHighlights();
    (items || []).forEach(it => {
      const sel = it && it.selector ? String(it.selector).trim() : '';
      if (!sel) return;
      try { document.querySelectorAll(sel).forEach(el => el.classList.add(PROFILE_CLASS)); } catch (e) {}
    });
  }

  async function loadProfileByName(name) {
    const parsed = safeParseJson(await callHost('aimLoadSelectionProfile', String(name || '').trim()), null);
    if (!parsed || typeof parsed !== 'object') return { name, items: [] };
    if (!parsed.name) parsed.name = name;
    if (!Array.isArray(parsed.items)) parsed.items = [];
    return parsed;
  }

  async function saveProfileObject(profile) {
    const out = {
      name: String(profile.name || '').trim(),
      createdAt: profile.createdAt || new Date().toISOString(),
      notes: String(profile.notes || ''),
      items: Array.isArray(profile.items) ? profile.items : [],
    };
    if (!out.name) return 'ERR: missing name';
    if (!validName(out.name)) return 'ERR: invalid name (use letters/numbers/._-)';
    const res = await callHost('aimSaveSelectionProfile', JSON.stringify(out));
    return res === null ? 'ERR: missing binding' : String(res);
  }

  async function renderSelectionProfiles(body) {
    const cfg = await getConfig();
    body.innerHTML = '';
    const card = document.createElement('div');
    card.className = '__aim_card';
    card.innerHTML = `
      <div class="__aim_k">Selection Profiles</div>
      <div class="__aim_row">
        <select id="__aim_sp"></select>
        <div class="__aim_btn" id="__aim_load_sp">Load</div>
        <div class="__aim_btn" id="__aim_apply_hl">Highlight</div>
        <div class="__aim_btn" id="__aim_clear_hl">Clear</div>
      </div>
      <div class="__aim_row">
        <input id="__aim_sp_name" placeholder="new profile name (letters/numbers/._-)"/>
        <div class="__aim_btn" id="__aim_save_picked">Save PICKED as profile</div>
      </div>
      <div class="__aim_k" style="margin-top:8px">Profile Items</div>
      <div id="__aim_sp_items"></div>
      <div class="__aim_k" style="margin-top:10px">Install From Profile</div>
      <div class="__aim_row">
        <select id="__aim_sp_item"></select>
        <div class="__aim_btn" id="__aim_install_sp">Install</div>
      </div>
      <div class="__aim_k" style="margin-top:10px">Profile JSON</div>
      <textarea id="__aim_sp_json" spellcheck="false"></textarea>
      <div class="__aim_row" style="margin-top:8px">
        <div class="__aim_btn" id="__aim_save_json">Save JSON</div>
        <div style="flex:1"></div>
        <span class="__aim_k" id="__aim_sp_status"></span>
      </div>
    `;
    body.appendChild(card);

    const spSel = card.querySelector('#__aim_sp');
    const statusEl = card.querySelector('#__aim_sp_status');
    const itemsHost = card.querySelector('#__aim_sp_items');
    const jsonArea = card.querySelector('#__aim_sp_json');
    const spItemSel = card.querySelector('#__aim_sp_item');
    const setStatus = (s) => { statusEl.textContent = s || ''; };

    (cfg?.selectionProfiles || ['sample']).forEach(name => {
      const o = document.createElement('option');
      o.value = name;
      o.textContent = name;
      spSel.appendChild(o);
    });

    let current = { name: spSel.value || 'sample', items: [] };
    const syncJson = () => { jsonArea.value = JSON.stringify(current, null, 2); };

    function parseJsonArea() {
      const parsed = safeParseJson(jsonArea.value, null);
      if (!parsed || typeof parsed !== 'object') return null;
      if (!parsed.name || !Array.isArray(parsed.items)) return null;
      return parsed;
    }

    function rebuildInstallDropdown() {
      spItemSel.innerHTML = '';
      const all = document.createElement('option');
      all.value = '0';
      all.textContent = 'ALL';
      spItemSel.appendChild(all);
      (current.items || []).forEach((it, idx) => {
        const o = document.createElement('option');
        o.value = String(idx + 1);
        o.textContent = (idx + 1) + ': ' + (it.tag ? it.tag + ' ' : '') + (it.selector || '');
        spItemSel.appendChild(o);
      });
    }

    function refreshItems() {
      syncJson();
      renderItems();
      rebuildInstallDropdown();
      applyProfileHighlights(current.items);
    }

    function renderItems() {
      itemsHost.innerHTML = '';
      const items = current.items || [];
      if (!items.length) {
        const empty = document.createElement('div');
        empty.className = '__aim_k';
        empty.textContent = '(no items)';
        itemsHost.appendChild(empty);
        return;
      }
      items.forEach((it, idx) => {
        const div = document.createElement('div');
        div.className = '__aim_item';
        div.innerHTML = `
          <div class="__aim_row" style="justify-content:space-between">
            <span class="__aim_badge">#${idx + 1}</span>
            <span class="__aim_badge">${esc(it.kind)}</span>
            <span class="__aim_badge">${esc(it.tag)}</span>
          </div>
          <div class="__aim_k" style="margin-top:6px">selector</div>
          <input data-f="selector" value="${escAttr(it.selector)}"/>
          <div class="__aim_k" style="margin-top:6px">text</div>
          <input data-f="text" value="${escAttr(it.text)}"/>
          <div class="__aim_row" style="margin-top:8px">
            <div class="__aim_btn" data-act="scroll">Scroll</div>
            <div class="__aim_btn" data-act="remove">Delete</div>
          </div>
        `;
        div.querySelectorAll('input[data-f]').forEach(inp => {
          inp.addEventListener('input', () => {
            current.items[idx][inp.getAttribute('data-f')] = inp.value || '';
            syncJson();
            applyProfileHighlights(current.items);
            rebuildInstallDropdown();
          });
        });
        div.querySelector('[data-act="scroll"]').addEventListener('click', () => {
          try {
            const el = document.querySelector(current.items[idx].selector);
            if (el) el.scrollIntoView({ behavior: 'smooth', block: 'center', inline: 'center' });
          } catch (e) {}
        });
        div.querySelector('[data-act="remove"]').addEventListener('click', async () => {
          current.items.splice(idx, 1);
          refreshItems();
          setStatus('Saving after delete...');
          setStatus(await saveProfileObject(current));
        });
        itemsHost.appendChild(div);
      });
    }

    async function loadSelected() {
      const name = (spSel.value || '').trim() || 'sample';
      current = await loadProfileByName(name);
      refreshItems();
      setStatus('Loaded + highlighted: ' + name);
    }

    card.querySelector('#__aim_load_sp').addEventListener('click', loadSelected);
    spSel.addEventListener('change', loadSelected);
    card.querySelector('#__aim_apply_hl').addEventListener('click', () => {
      const parsed = parseJsonArea();
      if (parsed) current = parsed;
      refreshItems();
      setStatus('Highlighted current items');
    });
    card.querySelector('#__aim_clear_hl').addEventListener('click', () => {
      clearProfileHighlights();
      setStatus('Cleared highlights');
    });
    card.querySelector('#__aim_save_picked').addEventListener('click', async () => {
      const name = (card.querySelector('#__aim_sp_name').value || '').trim();
      if (!name) return setStatus('Missing name');
      if (!validName(name)) return setStatus('Invalid name (use letters/numbers/._-)');
      const items = session.selections
        .map(it => ({ selector: it.selector || '', tag: it.tag || '', kind: it.kind || '', text: it.text || '' }))
        .filter(x => x.selector);
      if (!items.length) return setStatus('No picked selections to save');
      setStatus('Saving...');
      const res = await saveProfileObject({ name, createdAt: new Date().toISOString(), notes: '', items });
      await renderSelectionProfiles(body);
      const st = document.getElementById('__aim_sp_status');
      if (st) st.textContent = res;
    });
    card.querySelector('#__aim_save_json').addEventListener('click', async () => {
      const parsed = parseJsonArea();
      if (!parsed) return setStatus('Invalid JSON or missing name/items[]');
      if (!validName(parsed.name)) return setStatus('Invalid name (use letters/numbers/._-)');
      current = parsed;
      refreshItems();
      setStatus('Saving...');
      setStatus(await saveProfileObject(current));
    });
    card.querySelector('#__aim_install_sp').addEventListener('click', async () => {
      const selProfile = (spSel.value || '').trim();
      const selIndex = parseInt(spItemSel.value || '0', 10) || 0;
      setStatus('Installing...');
      const res = await callHost('aimInstallFromProfile', JSON.stringify({ selProfile, selIndex }));
      if (res === null) return setStatus('ERR: missing binding');
      setStatus(res === 'OK' ? 'Install exported' : String(res));
    });

    await loadSelected();
  }

  function renderPicked(body) {
    body.innerHTML = '';
    const card = document.createElement('div');
    card.className = '__aim_card';
    card.innerHTML = '<div class="__aim_k">Picked items</div><div id="__aim_list"></div>';
    body.appendChild(card);
    const list = card.querySelector('#__aim_list');
    session.selections.forEach((it, i) => {
      const div = document.createElement('div');
      div.className = '__aim_item';
      div.innerHTML = `
        <div class="__aim_row" style="justify-content:space-between">
          <span class="__aim_badge">#${i + 1}</span>
          <span class="__aim_badge">${esc(it.kind)}</span>
          <span class="__aim_badge">${esc(it.tag)}</span>
        </div>
        <div class="__aim_k" style="margin-top:6px">selector</div>
        <div title="${escAttr(it.selector)}">${esc(it.selector)}</div>
        <div class="__aim_k" style="margin-top:6px">text</div>
        <div title="${escAttr(it.text)}">${esc(it.text)}</div>
        <div class="__aim_row" style="margin-top:8px">
          <div class="__aim_btn" data-act="rm">Remove</div>
          <div class="__aim_btn" data-act="go">Scroll</div>
        </div>
      `;
      div.querySelector('[data-act="rm"]').addEventListener('click', () => remove(i));
      div.querySelector('[data-act="go"]').addEventListener('click', () => {
        try {
          const el = document.querySelector(it.selector);
          if (el) el.scrollIntoView({ behavior: 'smooth', block: 'center', inline: 'center' });
        } catch (e) {}
      });
      list.appendChild(div);
    });
  }

  window.__aimPick = Object.freeze({
    install,
    toggle,
    undo,
    remove,
    finish,
    cancel,
    snapshot,
    isTerminal,
  });

  let resume = false;
  try { resume = sessionStorage.getItem(RESUME_KEY) === '1'; } catch (e) {}
  if (resume) {
    if (document.readyState === 'loading') document.addEventListener('DOMContentLoaded', install, { once: true });
    else install();
  }
})();
"""


@dataclass(frozen=True)
class PickSessionState:
    active: bool = False
    pick_mode_on: bool = False
    done: bool = False
    canceled: bool = False
    selections: list[Selection] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return self.done or self.canceled

    @classmethod
    def from_snapshot(cls, payload: dict[str, Any] | None) -> "PickSessionState":
        if not isinstance(payload, dict):
            return cls()
        raw_items = payload.get("selections") or []
        selections = [Selection.from_dict(item) for item in raw_items if isinstance(item, dict)]
        return cls(
            active=bool(payload.get("active")),
            pick_mode_on=bool(payload.get("pickModeOn")),
            done=bool(payload.get("done")),
            canceled=bool(payload.get("canceled")),
            selections=selections,
        )


def picker_script() -> str:
    cfg = {
        "keys": PICKER_KEYS,
        "suppressed": list(SUPPRESSED_EVENTS),
        "nameRe": PROFILE_NAME_RE.pattern,
        "defaultProfileText": DEFAULT_BROWSER_PROFILE_TEXT,
    }
    return PICKER_JS.replace("__CFG_JSON__", json.dumps(cfg, ensure_ascii=False)).replace(
        "__SELECTOR_FUNCTIONS__", selector_script()
    )


def register_picker(context: Any) -> None:
    """Register the picker on every document the context opens."""
    context.add_init_script(script=picker_script())


def install_picker(page: Any) -> bool:
    """Start pick mode on the current document, injecting the script if needed."""
    installed = bool(page.evaluate(INSTALL_JS))
    if not installed:
        page.evaluate("() => {\n" + picker_script() + "\n}")
        installed = bool(page.evaluate(INSTALL_JS))
    return installed


def read_session_state(page: Any) -> PickSessionState:
    return PickSessionState.from_snapshot(page.evaluate(SNAPSHOT_JS))


def wait_for_session_end(page: Any, *, polling_ms: int = 250) -> PickSessionState:
    """Block until the operator finishes or cancels; there is no timeout."""
    page.wait_for_function(TERMINAL_JS, polling=polling_ms, timeout=0)
    return read_session_state(page)
