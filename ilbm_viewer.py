import tkinter as tk
from tkinter import filedialog, messagebox
from functools import lru_cache
from pathlib import Path

import numpy as np
from PIL import Image, ImageTk

from ilbmdecoder import IlbmError, header_info, load
from pixel_sinks import PILImageSink
import viewer_style as style

# rows decoded per Tk tick; keeps the window responsive on tall images
ROWS_PER_TICK = 16
# the canvas is redrawn every this many ticks, and once at the end
REFRESH_TICKS = 8
MIN_ZOOM, MAX_ZOOM = 0.1, 32.0
ILBM_FILETYPES = [("IFF/ILBM files", "*.iff *.ilbm *.lbm"), ("All files", "*.*")]


# ==== Utility functions ====
@lru_cache(maxsize=4)
def checkerboard(width: int, height: int, size: int = style.CHECKER_SIZE) -> Image.Image:
    ys, xs = np.mgrid[0:height, 0:width]
    dark = ((xs // size) + (ys // size)) % 2 == 1
    arr = np.empty((height, width, 4), dtype=np.uint8)
    arr[:] = style.CHECKER_LIGHT
    arr[dark] = style.CHECKER_DARK
    return Image.fromarray(arr)


def composite_on_checkerboard(img: Image.Image) -> Image.Image:
    return Image.alpha_composite(checkerboard(img.width, img.height), img)


def decode_rows(session, limit: int = ROWS_PER_TICK) -> int:
    """Decode up to `limit` rows; returns how many were produced."""
    count = 0
    while count < limit and session.decode_next_scanline():
        count += 1
    return count


# ==== ILBM Viewer ====
class ILBMViewer(tk.Frame):
    def __init__(self, master, file_path=None):
        super().__init__(master, bg=style.BG_MAIN)
        self.master = master
        self.pack(fill="both", expand=True)

        # Toolbar
        toolbar = tk.Frame(self, bg=style.BG_TOOLBAR, padx=10, pady=8)
        toolbar.pack(side="top", fill="x")
        for text, cmd in (("Open ILBM", self.open_ilbm),
                          ("Zoom In", self.zoom_in),
                          ("Zoom Out", self.zoom_out)):
            tk.Button(toolbar, text=text, command=cmd,
                      bg=style.BG_BUTTON, fg=style.FG_BUTTON,
                      font=style.FONT_BUTTON, relief="flat", padx=10, pady=4).pack(side="left", padx=5)
        self.status_label = tk.Label(toolbar, text="", bg=style.BG_TOOLBAR, fg=style.FG_BUTTON,
                                     font=style.FONT_TEXT)
        self.status_label.pack(side="right", padx=5)

        # Main Frame
        main_frame = tk.Frame(self, bg=style.BG_MAIN)
        main_frame.pack(fill="both", expand=True, padx=10, pady=10)

        # Canvas frame
        canvas_frame = tk.Frame(main_frame, bg=style.BG_MAIN)
        canvas_frame.pack(side="left", fill="both", expand=True, padx=(0, 10))
        self.canvas = tk.Canvas(canvas_frame, bg=style.BG_PANEL, cursor="cross")
        self.canvas.pack(side="left", fill="both", expand=True)
        self.scroll_y = tk.Scrollbar(canvas_frame, orient="vertical", command=self.canvas.yview)
        self.scroll_y.pack(side="right", fill="y")
        self.scroll_x = tk.Scrollbar(main_frame, orient="horizontal", command=self.canvas.xview)
        self.scroll_x.pack(side="bottom", fill="x")
        self.canvas.configure(yscrollcommand=self.scroll_y.set, xscrollcommand=self.scroll_x.set)

        self.canvas.bind("<Button-1>", self.get_pixel_info)
        self.canvas.bind("<ButtonPress-2>", self.start_pan)
        self.canvas.bind("<B2-Motion>", self.pan_image)
        self.canvas.bind("<MouseWheel>", self.on_mousewheel)
        self.canvas.bind("<Button-4>", self.on_mousewheel)
        self.canvas.bind("<Button-5>", self.on_mousewheel)

        # Info Panel
        info_frame = tk.Frame(main_frame, bg=style.BG_PANEL, bd=2, relief="groove", padx=15, pady=15)
        info_frame.pack(side="right", fill="y")
        tk.Label(info_frame, text="Pixel Info", font=style.FONT_HEADER,
                 bg=style.BG_PANEL, fg=style.FG_TEXT).pack(anchor="w", pady=(0, 5))
        self.pixel_label = tk.Label(info_frame,
            text="Click on the image to view pixel RGBA values.",
            font=style.FONT_TEXT, justify="left", bg=style.BG_PANEL, fg=style.FG_SUBTEXT)
        self.pixel_label.pack(anchor="w", pady=(0, 10))
        self.color_preview = tk.Canvas(info_frame, width=80, height=50, bg="#cccccc", bd=1, relief="solid")
        self.color_preview.pack(anchor="w", pady=(0, 20))
        tk.Frame(info_frame, height=2, bg="#e0e0e0").pack(fill="x", pady=10)
        tk.Label(info_frame, text="Header Info", font=style.FONT_HEADER,
                 bg=style.BG_PANEL, fg=style.FG_TEXT).pack(anchor="w", pady=(0, 5))
        self.header_text = tk.Text(info_frame, height=13, width=36,
                                   font=style.FONT_MONO, bg="#f9f9f9", fg="#222",
                                   relief="flat", wrap="none")
        self.header_text.pack(anchor="w", pady=(0, 5))
        self.header_text.configure(state="disabled")
        tk.Label(info_frame, text="Color Palette", font=style.FONT_HEADER,
                 bg=style.BG_PANEL, fg=style.FG_TEXT).pack(anchor="w", pady=(10, 5))
        self.palette_canvas = tk.Canvas(info_frame, width=256, height=128, bg="#fff", bd=1, relief="solid")
        self.palette_canvas.pack(anchor="w")

        # Vars
        self.sink = None
        self.session = None
        self.tk_img = None
        self.zoom_factor = 1.0
        self.filename = file_path
        self.header_info = None
        self.palette = None
        self._after_id = None
        self._ticks = 0

        if file_path:
            self.load_ilbm(file_path)

    @property
    def image(self):
        return self.sink.image if self.sink else None

    # ==== File Handling ====
    def open_ilbm(self):
        file_path = filedialog.askopenfilename(filetypes=ILBM_FILETYPES)
        if file_path:
            self.load_ilbm(file_path)

    def load_ilbm(self, file_path):
        path = Path(file_path)
        try:
            sink = PILImageSink()
            session = load(path.read_bytes(), sink)
        except (IlbmError, OSError) as e:
            messagebox.showerror("Error", f"Failed to open ILBM file:\n{e}")
            return

        self.cancel_decode()
        self.filename = file_path
        self.sink = sink
        self.session = session
        self.palette = session.palette
        self.header_info = {"Filename": path.name, "File Size": f"{path.stat().st_size} bytes"}
        self.header_info.update(header_info(session))
        for _, msg in session.warnings:
            self.header_info.setdefault("Warnings", [])
            self.header_info["Warnings"].append(msg)
        self.zoom_factor = 1.0
        self._ticks = 0
        self.show_header_info()
        self.draw_palette()
        self._after_id = self.after(0, self.decode_step)

    # ==== Cooperative decoding ====
    def decode_step(self):
        self._after_id = None
        session = self.session
        self._ticks += 1
        try:
            decode_rows(session)
        except IlbmError as e:
            self.display_image()
            self.status_label.config(text=f"Failed at row {session.y}")
            messagebox.showerror("Error", f"Failed to decode ILBM file:\n{e}")
            return

        if session.done or self._ticks % REFRESH_TICKS == 1:
            self.display_image()
        if session.done:
            self.status_label.config(text=f"{session.width} × {session.height}")
        else:
            self.status_label.config(text=f"Decoding… {session.y}/{session.height}")
            self._after_id = self.after(1, self.decode_step)

    def cancel_decode(self):
        if self._after_id is not None:
            self.after_cancel(self._after_id)
            self._after_id = None

    # ==== Display & Zoom ====
    def display_image(self, img=None):
        if img is None: img = self.image
        if img:
            w = max(1, int(img.width * self.zoom_factor))
            h = max(1, int(img.height * self.zoom_factor))
            img_resized = composite_on_checkerboard(img).resize((w, h), Image.NEAREST)
            self.tk_img = ImageTk.PhotoImage(img_resized)
            self.canvas.delete("all")
            self.canvas.create_image(0, 0, anchor="nw", image=self.tk_img)
            self.canvas.config(scrollregion=self.canvas.bbox("all"))

    def set_zoom(self, factor):
        factor = min(MAX_ZOOM, max(MIN_ZOOM, factor))
        if factor != self.zoom_factor:
            self.zoom_factor = factor
            self.display_image()

    def zoom_in(self):
        self.set_zoom(self.zoom_factor * 1.25)

    def zoom_out(self):
        self.set_zoom(self.zoom_factor / 1.25)

    def on_mousewheel(self, event):
        # Button-4/5 on X11, delta elsewhere
        if event.num == 4 or getattr(event, "delta", 0) > 0:
            self.zoom_in()
        elif event.num == 5 or getattr(event, "delta", 0) < 0:
            self.zoom_out()

    def start_pan(self, event):
        self.canvas.scan_mark(event.x, event.y)

    def pan_image(self, event):
        self.canvas.scan_dragto(event.x, event.y, gain=1)

    # ==== Pixel info ====
    def get_pixel_info(self, event):
        if self.image:
            x = int(self.canvas.canvasx(event.x) / self.zoom_factor)
            y = int(self.canvas.canvasy(event.y) / self.zoom_factor)
            if 0 <= x < self.image.width and 0 <= y < self.image.height:
                r, g, b, a = self.image.getpixel((x, y))
                self.pixel_label.config(text=f"X:{x}\nY:{y}\nR:{r}\nG:{g}\nB:{b}\nA:{a}")
                self.color_preview.config(bg=f"#{r:02x}{g:02x}{b:02x}" if a else "#cccccc")

    # ==== Header info ====
    def show_header_info(self):
        if not self.header_info: return
        lines = []
        for k, v in self.header_info.items():
            if isinstance(v, list):
                lines.extend(f"{k}: {item}" for item in v)
            else:
                lines.append(f"{k}: {v}")
        self.header_text.configure(state="normal")
        self.header_text.delete("1.0", "end")
        self.header_text.insert("1.0", "\n".join(lines))
        self.header_text.configure(state="disabled")

    # ==== Palette ====
    def draw_palette(self):
        self.palette_canvas.delete("all")
        if not self.palette: return
        PAD = 2; cols = 16; cell = 16
        total = min(256, len(self.palette))
        rows = (total + cols - 1) // cols
        self.palette_canvas.config(width=cols * cell + PAD * 2, height=rows * cell + PAD * 2)
        for i, color in enumerate(self.palette[:total]):
            x = PAD + (i % cols) * cell
            y = PAD + (i // cols) * cell
            self.palette_canvas.create_rectangle(
                x, y, x + cell, y + cell, outline="",
                fill=f"#{color.r:02x}{color.g:02x}{color.b:02x}")


# ==== Main ====
if __name__ == "__main__":
    root = tk.Tk()
    root.title("ILBM Viewer")
    root.geometry("1200x800")
    app = ILBMViewer(root)
    app.pack(fill="both", expand=True)
    root.mainloop()
