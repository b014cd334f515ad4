"""GDScript input receiver injected into the project as an autoload.

Once the game starts, the receiver listens on a loopback TCP port and
answers every newline-terminated JSON command with exactly one JSON line.
It only accepts one client at a time; a new connection replaces the old
one. The controller treats the commands as opaque, the handful handled
here are what the receiver understands out of the box.

Protocol (JSON lines over TCP):
    Request:  {"type": "get_state"}
    Response: {"ok": true, "scene": "res://main.tscn", "fps": 60, ...}

    Unknown or malformed commands get {"ok": false, "error": "..."}.
"""

RECEIVER_SCRIPT = r"""
# Input receiver injected by godot-session. Removed when the session ends.
extends Node

const HOST := "127.0.0.1"
const PORT := __PORT__

var _server := TCPServer.new()
var _peer: StreamPeerTCP = null
var _buffer := PackedByteArray()


func _ready() -> void:
	process_mode = Node.PROCESS_MODE_ALWAYS
	var err := _server.listen(PORT, HOST)
	if err != OK:
		push_error("Input receiver could not listen on %s:%d (%s)" % [HOST, PORT, error_string(err)])
		return
	print("Input receiver listening on %s:%d" % [HOST, PORT])


func _process(_delta: float) -> void:
	if _server.is_connection_available():
		_peer = _server.take_connection()
		_buffer = PackedByteArray()
	if _peer == null:
		return
	_peer.poll()
	if _peer.get_status() != StreamPeerTCP.STATUS_CONNECTED:
		_peer = null
		return
	var available := _peer.get_available_bytes()
	if available <= 0:
		return
	var chunk := _peer.get_data(available)
	if chunk[0] != OK:
		return
	_buffer.append_array(chunk[1])
	var idx := _buffer.find(10)
	while idx != -1:
		var line := _buffer.slice(0, idx).get_string_from_utf8().strip_edges()
		_buffer = _buffer.slice(idx + 1)
		if not line.is_empty():
			_reply(_handle(line))
		idx = _buffer.find(10)


func _handle(line: String) -> Dictionary:
	var command = JSON.parse_string(line)
	if typeof(command) != TYPE_DICTIONARY:
		return {"ok": false, "error": "Command is not a JSON object"}
	match str(command.get("type", "")):
		"ping":
			return {"ok": true}
		"input":
			return _input(command)
		"get_state":
			return _state()
		"screenshot":
			return _screenshot(command)
		var other:
			return {"ok": false, "error": "Unknown command type: %s" % other}


func _input(command: Dictionary) -> Dictionary:
	var action := str(command.get("action", ""))
	if not InputMap.has_action(action):
		return {"ok": false, "error": "Unknown input action: %s" % action}
	if command.get("pressed", true):
		Input.action_press(action)
	else:
		Input.action_release(action)
	return {"ok": true, "action": action}


func _state() -> Dictionary:
	var tree := get_tree()
	var scene := tree.current_scene
	var autoloads := {}
	for child in tree.root.get_children():
		if child != scene and child != self:
			autoloads[child.name] = child.get_class()
	return {
		"ok": true,
		"scene": scene.scene_file_path if scene != null else "",
		"paused": tree.paused,
		"fps": Engine.get_frames_per_second(),
		"frame": Engine.get_process_frames(),
		"autoloads": autoloads,
	}


func _screenshot(command: Dictionary) -> Dictionary:
	var path := str(command.get("output_path", "user://capture.png"))
	DirAccess.make_dir_recursive_absolute(path.get_base_dir())
	var image := get_viewport().get_texture().get_image()
	var err := image.save_png(path)
	if err != OK:
		return {"ok": false, "error": error_string(err)}
	return {"ok": true, "path": path, "size": "%dx%d" % [image.get_width(), image.get_height()]}


func _reply(data: Dictionary) -> void:
	if _peer != null:
		_peer.put_data((JSON.stringify(data) + "\n").to_utf8_buffer())
"""


def render_receiver_script(port: int) -> str:
    """Return the receiver source configured to listen on ``port``."""
    return RECEIVER_SCRIPT.replace("__PORT__", str(int(port))).lstrip("\n")
