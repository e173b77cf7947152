"""
Helpers for the live-preview sandbox: entry-point selection, sandbox file
map, and the starter files given to new projects.
"""
import json
from typing import Dict

# Checked in order before falling back to the first JS/JSX file
ENTRY_POINT_CANDIDATES = ("index.js", "App.js", "src/App.js", "src/index.js")
DEFAULT_ENTRY_POINT = "/App.js"

REACT_DEPENDENCIES = {
    "react": "^18.2.0",
    "react-dom": "^18.2.0",
}

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>React App</title>
</head>
<body>
    <div id="root"></div>
</body>
</html>"""

INDEX_JS = """import React from 'react';
import ReactDOM from 'react-dom/client';
import App from './App';

const root = ReactDOM.createRoot(document.getElementById('root'));
root.render(
  <React.StrictMode>
    <App />
  </React.StrictMode>
);"""

APP_JS = """import React from 'react';
import './App.css';

function App() {
  return (
    <div className="App">
      <header className="App-header">
        <h1>Welcome!</h1>
        <p>Start coding your React app here.</p>
      </header>
    </div>
  );
}

export default App;"""

APP_CSS = """/* Add your styles here */
.App {
  text-align: center;
}

.App-header {
  background-color: #282c34;
  padding: 20px;
  color: white;
  min-height: 100vh;
  display: flex;
  flex-direction: column;
  align-items: center;
  justify-content: center;
  font-size: calc(10px + 2vmin);
}

h1 {
  margin-bottom: 20px;
}

p {
  font-size: 18px;
  opacity: 0.8;
}"""

STARTER_FILES: Dict[str, str] = {
    "App.js": APP_JS,
    "App.css": APP_CSS,
    "index.js": INDEX_JS,
}


def select_entry_point(files: Dict[str, str]) -> str:
    """
    Pick the file the preview starts from, as a sandbox path with a leading "/".

    >>> select_entry_point({"App.js": "", "index.js": ""})
    '/index.js'
    >>> select_entry_point({"styles.css": "", "main.jsx": ""})
    '/main.jsx'
    """
    for candidate in ENTRY_POINT_CANDIDATES:
        if candidate in files:
            return f"/{candidate}"
    for path in files:
        if path.endswith(".js") or path.endswith(".jsx"):
            return f"/{path}"
    return DEFAULT_ENTRY_POINT


def build_preview_files(files: Dict[str, str]) -> Dict[str, Dict[str, str]]:
    """Convert a project file map into the sandbox's ``{"/path": {"code": ...}}`` form"""
    sandbox = {"/public/index.html": {"code": INDEX_HTML}}
    for path, content in files.items():
        sandbox[f"/{path}"] = {"code": content}

    if "index.js" not in files and "App.js" in files:
        sandbox["/index.js"] = {"code": INDEX_JS}

    sandbox["/package.json"] = {
        "code": json.dumps({"dependencies": REACT_DEPENDENCIES}, indent=2),
    }
    return sandbox
