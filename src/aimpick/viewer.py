"""Static capture viewer written next to each manifest."""

from __future__ import annotations

from pathlib import Path

from aimpick.constants import FULL_PAGE_SCREENSHOT, MANIFEST_NAME


VIEWER_HTML = """<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <title>Aim Capture Viewer</title>
  <meta name="viewport" content="width=device-width,initial-scale=1">
  <style>
    body{font-family:system-ui,Segoe UI,Roboto,Arial;margin:0;background:#0b0c10;color:#e8e8ea}
    header{padding:14px 16px;border-bottom:1px solid rgba(255,255,255,.08);position:sticky;top:0;background:#0b0c10}
    .row{display:flex;gap:12px;align-items:center;flex-wrap:wrap}
    input{padding:8px 10px;border-radius:10px;border:1px solid rgba(255,255,255,.14);background:rgba(255,255,255,.06);color:#fff;min-width:280px}
    a{color:#7dd3fc}
    main{padding:16px;display:grid;grid-template-columns:repeat(auto-fit,minmax(320px,1fr));gap:12px}
    .card{border:1px solid rgba(255,255,255,.12);border-radius:14px;background:rgba(255,255,255,.04);padding:12px}
    .card.failed{border-color:rgba(248,113,113,.55)}
    .k{opacity:.7;font-size:12px}
    .v{word-break:break-word}
    .err{color:#fca5a5}
    img{max-width:100%;border-radius:12px;border:1px solid rgba(255,255,255,.12)}
    video{width:100%;border-radius:12px;border:1px solid rgba(255,255,255,.12)}
    pre{white-space:pre-wrap;word-break:break-word;background:rgba(0,0,0,.35);padding:10px;border-radius:12px;border:1px solid rgba(255,255,255,.12);max-height:240px;overflow:auto}
    .badge{display:inline-block;padding:2px 8px;border-radius:999px;border:1px solid rgba(255,255,255,.16);background:rgba(255,255,255,.08);font-size:12px}
  </style>
</head>
<body>
<header>
  <div class="row">
    <div class="badge">Aim Capture Viewer</div>
    <div class="k">Loads <b>__MANIFEST__</b> from this folder</div>
    <div class="k" id="meta"></div>
  </div>
  <div class="row" style="margin-top:10px">
    <input id="q" placeholder="filter by selector/text/tag/kind...">
    <a id="openPage" href="#" target="_blank" rel="noopener">open captured page</a>
    <a href="./__FULL_PAGE__" target="_blank" rel="noopener">full page screenshot</a>
  </div>
</header>
<main id="grid"></main>
<script>
(async () => {
  const grid = document.getElementById('grid');
  const esc = s => String(s || '').replaceAll('&', '&amp;').replaceAll('<', '&lt;').replaceAll('>', '&gt;').replaceAll('"', '&quot;');
  let m;
  try {
    const res = await fetch('./__MANIFEST__', {cache: 'no-store'});
    m = await res.json();
  } catch (e) {
    grid.innerHTML = `<div class="card err">Could not load __MANIFEST__: ${esc(e)}</div>`;
    return;
  }
  document.getElementById('openPage').href = m.pageUrl || '#';
  document.getElementById('meta').textContent = [m.label, m.capturedAt].filter(Boolean).join(' | ');
  const items = (m.results || []).map(r => ({
    index: r.index, selector: r.selector || '', tag: r.tag || '', kind: r.kind || '',
    pickedText: r.pickedText || '', innerText: r.innerText || '', outerHtml: r.outerHtml || '',
    screenshot: r.screenshotPath || '', error: r.error || r.screenshotError || '',
    downloads: (r.downloads || []).map(d => d.savedAs).filter(Boolean),
  }));
  const q = document.getElementById('q');
  const isVideo = p => /\\.(mp4|webm)$/i.test(p);
  const isImage = p => /\\.(png|jpe?g|webp|gif)$/i.test(p);
  function render() {
    const needle = (q.value || '').toLowerCase().trim();
    grid.innerHTML = '';
    items.filter(it => {
      if (!needle) return true;
      const hay = [it.selector, it.tag, it.kind, it.pickedText, it.innerText].join(' ').toLowerCase();
      return hay.includes(needle);
    }).forEach(it => {
      const card = document.createElement('div');
      card.className = it.error ? 'card failed' : 'card';
      const dlLinks = it.downloads.map(p => `<div><a href="./${esc(p)}" target="_blank" rel="noopener">${esc(p)}</a></div>`).join('');
      const mediaHtml = it.downloads.map(p => {
        if (isVideo(p)) return `<video controls src="./${esc(p)}"></video>`;
        if (isImage(p)) return `<img src="./${esc(p)}">`;
        return '';
      }).join('');
      card.innerHTML = `
        <div class="row" style="justify-content:space-between">
          <div class="badge">#${it.index}</div>
          <div class="badge">${esc(it.kind)}</div>
          <div class="badge">${esc(it.tag)}</div>
        </div>
        <div style="margin-top:10px"><div class="k">selector</div><div class="v">${esc(it.selector)}</div></div>
        ${it.error ? `<div style="margin-top:10px"><div class="k">error</div><div class="v err">${esc(it.error)}</div></div>` : ''}
        <div style="margin-top:10px"><div class="k">text</div><div class="v">${esc(it.pickedText || it.innerText)}</div></div>
        ${it.screenshot ? `<div style="margin-top:10px"><div class="k">screenshot</div><img src="./${esc(it.screenshot)}"></div>` : ''}
        ${mediaHtml ? `<div style="margin-top:10px"><div class="k">media preview</div>${mediaHtml}</div>` : ''}
        ${dlLinks ? `<div style="margin-top:10px"><div class="k">downloaded files</div>${dlLinks}</div>` : ''}
        ${it.outerHtml ? `<div style="margin-top:10px"><div class="k">outerHTML</div><pre>${esc(it.outerHtml)}</pre></div>` : ''}
      `;
      grid.appendChild(card);
    });
  }
  q.addEventListener('input', render);
  render();
})();
</script>
</body>
</html>
"""


def render_viewer() -> str:
    return VIEWER_HTML.replace("__MANIFEST__", MANIFEST_NAME).replace("__FULL_PAGE__", FULL_PAGE_SCREENSHOT)


def write_viewer(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_viewer(), encoding="utf-8")
    return path
