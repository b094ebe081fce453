import tkinter as tk
from tkinter import filedialog
from pathlib import Path

from ilbm_viewer import ILBMViewer, ILBM_FILETYPES
import viewer_style as style

ILBM_EXTENSIONS = {".iff", ".ilbm", ".lbm"}


def list_ilbm_files(folder):
    """ILBM-looking files directly inside `folder`, sorted by name."""
    return sorted((p for p in Path(folder).iterdir()
                   if p.is_file() and p.suffix.lower() in ILBM_EXTENSIONS),
                  key=lambda p: p.name.lower())


class ImageApp(tk.Tk):
    def __init__(self):
        super().__init__()
        self.title("ILBM Viewer")
        self.geometry("1200x800")
        self.viewer_frame = None
        self.folder_files = []

        # Menu
        menubar = tk.Menu(self)
        file_menu = tk.Menu(menubar, tearoff=0)
        file_menu.add_command(label="Open ILBM", command=self.open_ilbm)
        file_menu.add_command(label="Open Folder", command=self.open_folder)
        file_menu.add_separator()
        file_menu.add_command(label="Exit", command=self.quit)
        menubar.add_cascade(label="File", menu=file_menu)
        self.config(menu=menubar)

        # File list (filled by Open Folder)
        list_frame = tk.Frame(self, bg=style.BG_PANEL, padx=6, pady=6)
        list_frame.pack(side="left", fill="y")
        tk.Label(list_frame, text="Files", font=style.FONT_HEADER,
                 bg=style.BG_PANEL, fg=style.FG_TEXT).pack(anchor="w")
        self.file_list = tk.Listbox(list_frame, width=28, font=style.FONT_TEXT,
                                    activestyle="none", exportselection=False)
        self.file_list.pack(fill="y", expand=True)
        self.file_list.bind("<<ListboxSelect>>", self.on_file_selected)

        self.content = tk.Frame(self, bg=style.BG_MAIN)
        self.content.pack(side="left", fill="both", expand=True)

    def show_viewer(self, file_path):
        if self.viewer_frame:
            self.viewer_frame.cancel_decode()
            self.viewer_frame.destroy()
        self.viewer_frame = ILBMViewer(self.content, file_path)
        self.viewer_frame.pack(fill="both", expand=True)

    def open_ilbm(self):
        file_path = filedialog.askopenfilename(filetypes=ILBM_FILETYPES)
        if file_path:
            self.show_viewer(file_path)

    def open_folder(self):
        folder = filedialog.askdirectory()
        if not folder:
            return
        self.folder_files = list_ilbm_files(folder)
        self.file_list.delete(0, "end")
        for p in self.folder_files:
            self.file_list.insert("end", p.name)

    def on_file_selected(self, event):
        sel = self.file_list.curselection()
        if sel:
            self.show_viewer(self.folder_files[sel[0]])


if __name__ == "__main__":
    app = ImageApp()
    app.mainloop()
