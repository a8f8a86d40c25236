INDEX_HTML = r"""<!doctype html>
<html lang="en" data-bs-theme="dark">
<head>
  <meta charset="utf-8">
  <title>{{ app_title }}</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css" rel="stylesheet">
  <style>
    .card { border: 1px solid rgba(255,255,255,.08); }
    .path { color: rgba(255,255,255,.6); word-break: break-all; }
    .kind-Excluded, .kind-Hidden, .kind-SmallExe { opacity: .6; }
  </style>
</head>
<body>
<nav class="navbar navbar-expand-lg bg-body-tertiary px-3">
  <a class="navbar-brand" href="{{ url_for('gamerelay.index') }}">{{ app_title }}</a>
  <div class="ms-auto d-flex gap-2">
    <button class="btn btn-outline-light btn-sm" onclick="post('{{ url_for('gamerelay.scan_start') }}', {})">Scan</button>
    <button class="btn btn-outline-light btn-sm" onclick="post('{{ url_for('gamerelay.scan_start') }}', {force_full_rescan: true})">Full rescan</button>
    <button class="btn btn-outline-warning btn-sm" onclick="post('{{ url_for('gamerelay.scan_cancel') }}', {})">Cancel</button>
    <button class="btn btn-success btn-sm" onclick="post('{{ url_for('gamerelay.folders_commit_all') }}', {})">Add all mains</button>
  </div>
</nav>

<div class="container py-4">
  <div class="mb-3 small">
    Data directory: <code class="path">{{ home }}</code>
    {% if scanning %}<span class="badge text-bg-warning ms-2">Scanning</span>{% endif %}
    <span class="ms-2">{{ metrics.total_folders }} folder(s), {{ metrics.main_selected }} main,
      {{ metrics.cached_folders }} cached, {{ metrics.skipped_known_folders }} skipped</span>
  </div>

  <h5>Registry ({{ games|length }})</h5>
  <table class="table table-sm">
    <thead><tr><th>Name</th><th>Executable</th><th>Last result</th><th></th></tr></thead>
    <tbody>
    {% for g in games %}
      <tr>
        <td>{{ g.display_name }}</td>
        <td class="small path">{{ g.launch.main.target_path or g.install.exe_path }}</td>
        <td>{{ g.stats.last_result }}</td>
        <td><a class="btn btn-outline-light btn-sm" href="{{ url_for('gamerelay.launch_resolve', game_key=g.game_key) }}">Resolve</a></td>
      </tr>
    {% endfor %}
    </tbody>
  </table>

  <h5 class="mt-4">Last scan</h5>
  {% if not folders %}
    <p class="text-secondary">No scan results yet.</p>
  {% endif %}
  {% for f in folders %}
    {% set fid = folder_id(f) %}
    <div class="card p-3 mb-3">
      <div class="d-flex">
        <div class="fw-semibold">{{ f.folder_name }}</div>
        <span class="badge text-bg-secondary ms-2">{{ f.state.value }}</span>
        <span class="badge text-bg-dark ms-1">{{ f.source.value }}</span>
        <button class="btn btn-success btn-sm ms-auto" onclick="post('{{ url_for('gamerelay.folders_commit') }}', {folder_id: '{{ fid }}'})">Add to registry</button>
      </div>
      <div class="small path">{{ f.folder_path }}</div>
      <table class="table table-sm mt-2 mb-0">
        {% for e in f.exes %}
          <tr class="kind-{{ e.kind.value }}">
            <td>{{ e.suggested_name }}</td>
            <td class="small path">{{ e.exe_path }}</td>
            <td>{{ e.size_mb }} MB</td>
            <td>{{ e.kind.value }}{% if e.reason %} <span class="small path">({{ e.reason }})</span>{% endif %}</td>
            <td class="text-nowrap">
              <button class="btn btn-outline-light btn-sm" onclick='post("{{ url_for('gamerelay.folders_main') }}", {folder_id: "{{ fid }}", exe: {{ e.exe_path|tojson }}})'>Main</button>
              <button class="btn btn-outline-light btn-sm" onclick='post("{{ url_for('gamerelay.folders_tool') }}", {folder_id: "{{ fid }}", exe: {{ e.exe_path|tojson }}, selected: {{ 'false' if e.is_tool_selected else 'true' }}})'>{{ 'Untool' if e.is_tool_selected else 'Tool' }}</button>
              <button class="btn btn-outline-danger btn-sm" onclick='post("{{ url_for('gamerelay.folders_hide') }}", {exe: {{ e.exe_path|tojson }}})'>Hide</button>
            </td>
          </tr>
        {% endfor %}
      </table>
    </div>
  {% endfor %}
</div>

<script>
  async function post(url, body) {
    const r = await fetch(url, {method: 'POST', headers: {'Content-Type': 'application/json'}, body: JSON.stringify(body)});
    const data = await r.json().catch(() => ({}));
    if (!data.ok && data.error) alert(data.error);
    location.reload();
  }
</script>
</body>
</html>
"""
